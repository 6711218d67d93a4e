import asyncio

from civic_portal.client.polling import (
    ComplaintPoller,
    UpdateKind,
    diff_complaints,
    unread_responses,
    watch_all_complaints,
    watch_owner_complaints,
)
from civic_portal.core.errors import AuthenticationError, ConnectivityError
from civic_portal.core.lifecycle import ComplaintLifecycleEngine
from civic_portal.core.schemas import ComplaintStatus

from conftest import ADMIN, CITIZEN, make_complaint


def test_diff_reports_status_changes_and_new_responses() -> None:
    before = {1: make_complaint(id=1), 2: make_complaint(id=2), 3: make_complaint(id=3)}
    after = [
        make_complaint(id=1, status=ComplaintStatus.IN_PROGRESS),
        make_complaint(id=2, response='Crew scheduled.'),
        make_complaint(id=3),
        make_complaint(id=4),
    ]

    updates = {update.complaint.id: update for update in diff_complaints(before, after)}

    assert set(updates) == {1, 2}
    assert updates[1].kinds == frozenset({UpdateKind.STATUS_CHANGED})
    assert updates[1].previous_status == ComplaintStatus.PENDING
    assert updates[2].kinds == frozenset({UpdateKind.NEW_RESPONSE})


def test_unread_responses_lists_only_unread() -> None:
    complaints = [
        make_complaint(id=1, response='Done.', response_read=False),
        make_complaint(id=2, response='Done.', response_read=True),
        make_complaint(id=3),
    ]

    assert [complaint.id for complaint in unread_responses(complaints)] == [1]


def test_poll_once_reports_nothing_on_first_snapshot() -> None:
    received = []

    async def fetch():
        return [make_complaint()]

    poller = ComplaintPoller(fetch, received.append, interval_seconds=60)

    assert asyncio.run(poller.poll_once()) == []
    assert received == []
    assert [complaint.id for complaint in poller.complaints] == [1]


def test_running_poller_delivers_updates_and_stops_on_teardown() -> None:
    snapshots = iter(
        [
            [make_complaint()],
            [make_complaint(status=ComplaintStatus.RESOLVED)],
        ]
    )
    last = [make_complaint(status=ComplaintStatus.RESOLVED)]
    received = []

    async def fetch():
        return next(snapshots, last)

    async def scenario():
        poller = ComplaintPoller(fetch, received.append, interval_seconds=0.01)
        async with poller:
            assert poller.running
            for _ in range(100):
                if received:
                    break
                await asyncio.sleep(0.01)
        assert not poller.running
        return poller

    poller = asyncio.run(scenario())

    assert len(received) == 1
    assert received[0].complaint.status == ComplaintStatus.RESOLVED
    assert poller._task is None


def test_poller_keeps_going_after_connectivity_errors() -> None:
    attempts = []

    async def fetch():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectivityError('offline')
        return []

    async def scenario():
        poller = ComplaintPoller(fetch, lambda update: None, interval_seconds=0.01)
        poller.start()
        for _ in range(100):
            if len(attempts) >= 3:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

    asyncio.run(scenario())

    assert len(attempts) >= 3


def test_poller_ends_when_session_is_rejected() -> None:
    async def fetch():
        raise AuthenticationError('expired')

    async def scenario():
        poller = ComplaintPoller(fetch, lambda update: None, interval_seconds=0.01)
        poller.start()
        for _ in range(100):
            if not poller.running:
                break
            await asyncio.sleep(0.01)
        running = poller.running
        await poller.stop()
        return running

    assert asyncio.run(scenario()) is False


def test_watch_owner_complaints_polls_owner_list(repository) -> None:
    repository.add(make_complaint(id=1))
    repository.add(make_complaint(id=2, owner_id=2))
    engine = ComplaintLifecycleEngine(repository, timeout_seconds=1)
    poller = watch_owner_complaints(engine, CITIZEN, lambda update: None, interval_seconds=60)

    asyncio.run(poller.poll_once())

    assert [complaint.id for complaint in poller.complaints] == [1]


def test_failing_update_handler_does_not_stop_polling() -> None:
    statuses = iter([ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED])
    fetches = []

    async def fetch():
        fetches.append(1)
        return [make_complaint(status=next(statuses, ComplaintStatus.RESOLVED))]

    def on_update(update):
        raise KeyError(update.complaint.id)

    async def scenario():
        poller = ComplaintPoller(fetch, on_update, interval_seconds=0.01)
        poller.start()
        for _ in range(100):
            if len(fetches) >= 4:
                break
            await asyncio.sleep(0.01)
        running = poller.running
        await poller.stop()
        return running

    assert asyncio.run(scenario()) is True
    assert len(fetches) >= 4


def test_poller_survives_malformed_payload() -> None:
    attempts = []

    async def fetch():
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError('unexpected payload')
        return []

    async def scenario():
        poller = ComplaintPoller(fetch, lambda update: None, interval_seconds=0.01)
        async with poller:
            for _ in range(100):
                if len(attempts) >= 2:
                    break
                await asyncio.sleep(0.01)
            return poller.running

    assert asyncio.run(scenario()) is True
    assert len(attempts) >= 2


def test_watch_all_complaints_polls_admin_list(repository) -> None:
    repository.add(make_complaint(id=1))
    repository.add(make_complaint(id=2, owner_id=2))
    engine = ComplaintLifecycleEngine(repository, timeout_seconds=1)
    received = []
    poller = watch_all_complaints(engine, ADMIN, received.append, interval_seconds=60)

    asyncio.run(poller.poll_once())
    asyncio.run(engine.transition_status(ADMIN, 2, 'rejected'))
    updates = asyncio.run(poller.poll_once())

    assert sorted(complaint.id for complaint in poller.complaints) == [1, 2]
    assert [update.complaint.id for update in updates] == [2]
    assert received[0].previous_status == ComplaintStatus.PENDING
    assert 'list_all_complaints' in repository.calls
