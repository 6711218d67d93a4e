"""Periodic refresh of complaint lists, used in place of push notifications.

A poller belongs to the view that observes it: start it when the view opens
and stop it (or leave its ``async with`` block) when the view is torn down.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable

from civic_portal.core import config
from civic_portal.core.errors import AuthenticationError, PortalError
from civic_portal.core.lifecycle import ComplaintLifecycleEngine
from civic_portal.core.schemas import Actor, Complaint, ComplaintStatus

logger = logging.getLogger(__name__)


class UpdateKind(str, Enum):
    STATUS_CHANGED = "status-changed"
    NEW_RESPONSE = "new-response"


@dataclass(frozen=True)
class ComplaintUpdate:
    complaint: Complaint
    kinds: frozenset[UpdateKind]
    previous_status: ComplaintStatus | None = None


def diff_complaints(previous: dict[int, Complaint], current: Iterable[Complaint]) -> list[ComplaintUpdate]:
    updates = []
    for complaint in current:
        before = previous.get(complaint.id)
        if before is None:
            continue
        kinds = set()
        if before.status != complaint.status:
            kinds.add(UpdateKind.STATUS_CHANGED)
        if complaint.has_response and complaint.response != before.response:
            kinds.add(UpdateKind.NEW_RESPONSE)
        if kinds:
            updates.append(ComplaintUpdate(complaint, frozenset(kinds), before.status))
    return updates


def unread_responses(complaints: Iterable[Complaint]) -> list[Complaint]:
    return [complaint for complaint in complaints if complaint.has_response and not complaint.response_read]


class ComplaintPoller:
    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[Complaint]]],
        on_update: Callable[[ComplaintUpdate], None],
        interval_seconds: float | None = None,
    ) -> None:
        self._fetch = fetch
        self._on_update = on_update
        self.interval_seconds = interval_seconds or config.POLL_INTERVAL_SECONDS
        self._snapshot: dict[int, Complaint] | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def complaints(self) -> list[Complaint]:
        return list((self._snapshot or {}).values())

    async def poll_once(self) -> list[ComplaintUpdate]:
        complaints = await self._fetch()
        updates = diff_complaints(self._snapshot, complaints) if self._snapshot is not None else []
        self._snapshot = {complaint.id: complaint for complaint in complaints}
        for update in updates:
            try:
                self._on_update(update)
            except Exception:
                logger.exception("Update handler failed for complaint %s.", update.complaint.id)
        return updates

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Complaint poller ended with an error.")

    async def __aenter__(self) -> "ComplaintPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except AuthenticationError:
                logger.info("Session ended; complaint polling stopped.")
                return
            except PortalError as exc:
                logger.warning("Complaint poll failed, retrying in %ss: %s", self.interval_seconds, exc)
            except Exception:
                logger.exception("Complaint poll failed unexpectedly, retrying in %ss.", self.interval_seconds)
            await asyncio.sleep(self.interval_seconds)


def watch_owner_complaints(
    engine: ComplaintLifecycleEngine,
    actor: Actor,
    on_update: Callable[[ComplaintUpdate], None],
    interval_seconds: float | None = None,
) -> ComplaintPoller:
    return ComplaintPoller(lambda: engine.list_for_owner(actor), on_update, interval_seconds)


def watch_all_complaints(
    engine: ComplaintLifecycleEngine,
    actor: Actor,
    on_update: Callable[[ComplaintUpdate], None],
    interval_seconds: float | None = None,
) -> ComplaintPoller:
    return ComplaintPoller(lambda: engine.list_all(actor), on_update, interval_seconds)
