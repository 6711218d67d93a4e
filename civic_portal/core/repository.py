"""Contract the client core consumes to reach complaint and user records."""

from typing import Any, Protocol

from civic_portal.core.schemas import (
    Complaint,
    ComplaintDraft,
    ComplaintStatus,
    Credentials,
    LoginResult,
    Profile,
    ProfileFields,
    Registration,
    UserRecord,
)


class ComplaintRepository(Protocol):
    """Async access to complaints.

    Implementations raise the errors of ``civic_portal.core.errors``:
    ``NotFoundError`` for missing ids, ``ConflictError`` when
    ``expected_version`` is stale, ``AuthenticationError`` when the session
    token is absent or rejected.
    """

    async def create_complaint(self, draft: ComplaintDraft) -> Complaint: ...

    async def get_complaint(self, complaint_id: int) -> Complaint: ...

    async def list_complaints_by_owner(self, owner_id: int) -> list[Complaint]: ...

    async def list_all_complaints(
        self,
        status: ComplaintStatus | None = None,
        category: str | None = None,
    ) -> list[Complaint]: ...

    async def update_status(
        self, complaint_id: int, status: ComplaintStatus, expected_version: int
    ) -> Complaint: ...

    async def set_response(self, complaint_id: int, text: str, expected_version: int) -> Complaint: ...

    async def update_content(
        self, complaint_id: int, fields: dict[str, Any], expected_version: int
    ) -> Complaint: ...

    async def mark_response_read(self, complaint_id: int, expected_version: int) -> Complaint: ...

    async def delete_complaint(self, complaint_id: int) -> None: ...


class Authenticator(Protocol):
    async def login(self, credentials: Credentials) -> LoginResult: ...

    async def logout(self) -> None: ...


class AccountRepository(Authenticator, Protocol):
    async def register(self, registration: Registration) -> UserRecord: ...

    async def get_profile(self) -> Profile | None: ...

    async def create_profile(self, fields: ProfileFields) -> Profile: ...

    async def update_profile(self, fields: ProfileFields) -> Profile: ...

    async def list_users(self) -> list[UserRecord]: ...

    async def set_user_active(self, user_id: int, is_active: bool) -> UserRecord: ...
