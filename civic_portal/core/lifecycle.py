"""Complaint lifecycle rules and the client-side lifecycle engine.

The ``check_*`` functions are pure: they take an actor and the current
complaint, raise a typed error when the operation is not allowed, and return
what the caller needs to perform it. The repository service runs the same
checks against its own rows, so both sides agree on every transition.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from civic_portal.core import config
from civic_portal.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    RequestTimeoutError,
    ValidationError,
)
from civic_portal.core.repository import ComplaintRepository
from civic_portal.core.schemas import (
    CONTENT_FIELDS,
    Actor,
    Complaint,
    ComplaintCategory,
    ComplaintDraft,
    ComplaintStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSITIONS: dict[ComplaintStatus, frozenset[ComplaintStatus]] = {
    ComplaintStatus.PENDING: frozenset(
        {ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED}
    ),
    ComplaintStatus.IN_PROGRESS: frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED}),
    ComplaintStatus.RESOLVED: frozenset(),
    ComplaintStatus.REJECTED: frozenset(),
}

DELETABLE_STATUSES = frozenset({ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS})


def successors(status: ComplaintStatus | str) -> frozenset[ComplaintStatus]:
    return TRANSITIONS[parse_status(status)]


def _normalize_choice(value: Any) -> str:
    if isinstance(value, (ComplaintStatus, ComplaintCategory)):
        return value.value
    return str(value or "").strip().lower().replace("_", "-").replace(" ", "-")


def parse_status(value: ComplaintStatus | str) -> ComplaintStatus:
    try:
        return ComplaintStatus(_normalize_choice(value))
    except ValueError as exc:
        raise ValidationError(f"Unknown complaint status '{value}'.") from exc


def parse_category(value: ComplaintCategory | str) -> ComplaintCategory:
    normalized = _normalize_choice(value)
    if not normalized:
        raise ValidationError("Category is required.")
    try:
        return ComplaintCategory(normalized)
    except ValueError as exc:
        raise ValidationError(f"Unknown complaint category '{value}'.") from exc


def _require_text(label: str, value: Any, max_length: int | None = None) -> str:
    normalized = str(value or "").strip()
    if not normalized:
        raise ValidationError(f"{label} is required.")
    if max_length is not None and len(normalized) > max_length:
        raise ValidationError(f"{label} must be {max_length} characters or fewer.")
    return normalized


def _clean_content_field(name: str, value: Any) -> Any:
    if name == "title":
        return _require_text("Title", value, config.MAX_TITLE_LENGTH)
    if name == "description":
        return _require_text("Description", value, config.MAX_DESCRIPTION_LENGTH)
    if name == "category":
        return parse_category(value)
    return _require_text("Location", value)


def validate_new_complaint(
    title: str,
    description: str,
    category: ComplaintCategory | str,
    location: str,
) -> ComplaintDraft:
    return ComplaintDraft(
        title=_clean_content_field("title", title),
        description=_clean_content_field("description", description),
        category=_clean_content_field("category", category),
        location=_clean_content_field("location", location),
    )


def is_owner(actor: Actor, complaint: Complaint) -> bool:
    return actor.id == complaint.owner_id


def check_can_create(actor: Actor) -> None:
    if actor.is_admin:
        raise AuthorizationError("Only citizens can submit complaints.")


def check_can_read(actor: Actor, complaint: Complaint) -> None:
    if not (actor.is_admin or is_owner(actor, complaint)):
        raise AuthorizationError("You do not have permission to view this complaint.")


def check_can_list_all(actor: Actor) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can list all complaints.")


def check_transition(actor: Actor, complaint: Complaint, new_status: ComplaintStatus | str) -> bool:
    """Return True when the transition changes the status, False for a self-transition."""
    if not actor.is_admin:
        raise AuthorizationError("Only admins can change complaint status.")

    target = parse_status(new_status)
    if target == complaint.status:
        return False
    if target not in TRANSITIONS[complaint.status]:
        raise InvalidTransitionError(
            f"Cannot move a {complaint.status.value} complaint to {target.value}."
        )
    return True


def check_response(actor: Actor, text: str) -> str:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can respond to complaints.")
    return _require_text("Response", text, config.MAX_RESPONSE_LENGTH)


def check_mark_read(actor: Actor, complaint: Complaint) -> bool:
    """Return True when the read flag still has to be set."""
    if not is_owner(actor, complaint):
        raise AuthorizationError("Only the complaint owner can mark a response as read.")
    if not complaint.has_response:
        raise InvalidStateError("This complaint has no response to mark as read.")
    return not complaint.response_read


def check_content_edit(actor: Actor, complaint: Complaint, fields: dict[str, Any]) -> dict[str, Any]:
    if not is_owner(actor, complaint):
        raise AuthorizationError("Only the complaint owner can edit it.")
    if complaint.status != ComplaintStatus.PENDING:
        raise InvalidStateError("Complaints can only be edited while pending.")

    unknown = sorted(set(fields) - set(CONTENT_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}.")
    if not fields:
        raise ValidationError("No fields to update.")

    return {name: _clean_content_field(name, value) for name, value in fields.items()}


def check_delete(actor: Actor, complaint: Complaint) -> None:
    if not (actor.is_admin or is_owner(actor, complaint)):
        raise AuthorizationError("You do not have permission to delete this complaint.")
    if complaint.status not in DELETABLE_STATUSES:
        raise InvalidStateError(
            f"A {complaint.status.value} complaint can no longer be deleted."
        )


class ComplaintLifecycleEngine:
    """Validates complaint operations locally, then applies them through a repository.

    Versioned writes are retried exactly once after a ``ConflictError``,
    re-checking the rules against the refetched complaint. Every repository
    call is bounded by ``timeout_seconds``.
    """

    def __init__(self, repository: ComplaintRepository, timeout_seconds: float | None = None) -> None:
        self.repository = repository
        self.timeout_seconds = timeout_seconds or config.REQUEST_TIMEOUT_SECONDS

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except RequestTimeoutError:
            raise
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                f"Repository did not respond within {self.timeout_seconds:g} seconds."
            ) from exc

    async def _fetch(self, complaint_id: int) -> Complaint:
        return await self._call(self.repository.get_complaint(complaint_id))

    async def _apply_versioned(
        self,
        complaint_id: int,
        apply: Callable[[Complaint], Awaitable[Complaint]],
    ) -> Complaint:
        complaint = await self._fetch(complaint_id)
        try:
            return await apply(complaint)
        except ConflictError:
            logger.info("Complaint %s changed concurrently; refetching and retrying once.", complaint_id)

        complaint = await self._fetch(complaint_id)
        return await apply(complaint)

    async def create(
        self,
        owner: Actor,
        title: str,
        description: str,
        category: ComplaintCategory | str,
        location: str,
    ) -> Complaint:
        check_can_create(owner)
        draft = validate_new_complaint(title, description, category, location)
        complaint = await self._call(self.repository.create_complaint(draft))
        logger.info("Citizen %s submitted complaint %s.", owner.id, complaint.id)
        return complaint

    async def get(self, actor: Actor, complaint_id: int) -> Complaint:
        complaint = await self._fetch(complaint_id)
        check_can_read(actor, complaint)
        return complaint

    async def list_for_owner(self, actor: Actor) -> list[Complaint]:
        return await self._call(self.repository.list_complaints_by_owner(actor.id))

    async def list_all(
        self,
        actor: Actor,
        status: ComplaintStatus | str | None = None,
        category: ComplaintCategory | str | None = None,
    ) -> list[Complaint]:
        check_can_list_all(actor)
        status_filter = parse_status(status) if status else None
        category_filter = parse_category(category).value if category else None
        return await self._call(self.repository.list_all_complaints(status_filter, category_filter))

    async def transition_status(
        self,
        actor: Actor,
        complaint_id: int,
        new_status: ComplaintStatus | str,
    ) -> Complaint:
        async def apply(complaint: Complaint) -> Complaint:
            if not check_transition(actor, complaint, new_status):
                return complaint
            target = parse_status(new_status)
            updated = await self._call(
                self.repository.update_status(complaint.id, target, complaint.version)
            )
            logger.info(
                "Complaint %s moved from %s to %s by admin %s.",
                complaint.id,
                complaint.status.value,
                target.value,
                actor.id,
            )
            return updated

        return await self._apply_versioned(complaint_id, apply)

    async def attach_response(self, actor: Actor, complaint_id: int, text: str) -> Complaint:
        async def apply(complaint: Complaint) -> Complaint:
            cleaned = check_response(actor, text)
            return await self._call(
                self.repository.set_response(complaint.id, cleaned, complaint.version)
            )

        return await self._apply_versioned(complaint_id, apply)

    async def mark_response_read(
        self,
        actor: Actor,
        complaint_id: int,
        expected_version: int | None = None,
    ) -> Complaint:
        """Mark the response read.

        Pass the version of the copy the owner was shown; a newer response
        since then raises ``ConflictError`` instead of being flagged read.
        """
        complaint = await self._fetch(complaint_id)
        if not check_mark_read(actor, complaint):
            return complaint
        version = complaint.version if expected_version is None else expected_version
        return await self._call(self.repository.mark_response_read(complaint.id, version))

    async def edit_content(self, actor: Actor, complaint_id: int, fields: dict[str, Any]) -> Complaint:
        async def apply(complaint: Complaint) -> Complaint:
            cleaned = check_content_edit(actor, complaint, fields)
            return await self._call(
                self.repository.update_content(complaint.id, cleaned, complaint.version)
            )

        return await self._apply_versioned(complaint_id, apply)

    async def delete(self, actor: Actor, complaint_id: int) -> None:
        complaint = await self._fetch(complaint_id)
        check_delete(actor, complaint)
        await self._call(self.repository.delete_complaint(complaint.id))
        logger.info("Complaint %s deleted by user %s.", complaint.id, actor.id)
