"""HTTP implementation of the repository contract against the portal service."""

import logging
from enum import Enum
from typing import Any

import httpx

from civic_portal.client.session_store import SessionStore
from civic_portal.core import config
from civic_portal.core.errors import (
    AuthenticationError,
    ConnectivityError,
    NotFoundError,
    RequestTimeoutError,
    error_from_response,
)
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

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class ApiRepository:
    """Talks to the portal service with the session's bearer token.

    A missing or rejected token clears the session store before the
    ``AuthenticationError`` propagates.
    """

    def __init__(
        self,
        session_store: SessionStore,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session_store = session_store
        self._client = httpx.AsyncClient(
            base_url=base_url or config.API_BASE_URL,
            timeout=timeout_seconds or config.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiRepository":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> Any:
        headers = {}
        if authenticated:
            token = self.session_store.token
            if not token:
                self.session_store.handle_authentication_failure()
                raise AuthenticationError("Please log in to continue.")
            headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {key: _plain(value) for key, value in params.items() if value is not None}

        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError("Server is not responding.") from exc
        except httpx.TransportError as exc:
            raise ConnectivityError(f"No response from server at {self._client.base_url}.") from exc

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {"detail": response.text}

        error = error_from_response(response.status_code, body)
        logger.debug("%s %s failed with %s: %s", method, path, response.status_code, error.message)
        if authenticated and isinstance(error, AuthenticationError):
            self.session_store.handle_authentication_failure()
        raise error

    async def create_complaint(self, draft: ComplaintDraft) -> Complaint:
        data = await self._request("POST", "/complaints", json=draft.model_dump(mode="json"))
        return Complaint.model_validate(data)

    async def get_complaint(self, complaint_id: int) -> Complaint:
        data = await self._request("GET", f"/complaints/{complaint_id}")
        return Complaint.model_validate(data)

    async def list_complaints_by_owner(self, owner_id: int) -> list[Complaint]:
        data = await self._request("GET", f"/complaints/user/{owner_id}")
        return [Complaint.model_validate(item) for item in data]

    async def list_all_complaints(
        self,
        status: ComplaintStatus | None = None,
        category: str | None = None,
    ) -> list[Complaint]:
        data = await self._request(
            "GET", "/complaints/admin", params={"status": status, "category": category}
        )
        return [Complaint.model_validate(item) for item in data]

    async def update_status(
        self, complaint_id: int, status: ComplaintStatus, expected_version: int
    ) -> Complaint:
        data = await self._request(
            "PATCH",
            f"/complaints/{complaint_id}/status",
            json={"status": _plain(status), "expected_version": expected_version},
        )
        return Complaint.model_validate(data)

    async def set_response(self, complaint_id: int, text: str, expected_version: int) -> Complaint:
        data = await self._request(
            "PATCH",
            f"/complaints/{complaint_id}/response",
            json={"response": text, "expected_version": expected_version},
        )
        return Complaint.model_validate(data)

    async def update_content(
        self, complaint_id: int, fields: dict[str, Any], expected_version: int
    ) -> Complaint:
        payload = {name: _plain(value) for name, value in fields.items()}
        payload["expected_version"] = expected_version
        data = await self._request("PATCH", f"/complaints/{complaint_id}", json=payload)
        return Complaint.model_validate(data)

    async def mark_response_read(self, complaint_id: int, expected_version: int) -> Complaint:
        data = await self._request(
            "POST",
            f"/complaints/{complaint_id}/response/read",
            json={"expected_version": expected_version},
        )
        return Complaint.model_validate(data)

    async def delete_complaint(self, complaint_id: int) -> None:
        await self._request("DELETE", f"/complaints/{complaint_id}")

    async def register(self, registration: Registration) -> UserRecord:
        data = await self._request(
            "POST", "/auth/register", json=registration.model_dump(), authenticated=False
        )
        return UserRecord.model_validate(data)

    async def login(self, credentials: Credentials) -> LoginResult:
        data = await self._request(
            "POST", "/auth/login", json=credentials.model_dump(), authenticated=False
        )
        return LoginResult.model_validate(data)

    async def logout(self) -> None:
        await self._request("POST", "/auth/logout")

    async def get_profile(self) -> Profile | None:
        try:
            data = await self._request("GET", "/users/profile")
        except NotFoundError:
            return None
        return Profile.model_validate(data)

    async def create_profile(self, fields: ProfileFields) -> Profile:
        data = await self._request("POST", "/users/profile", json=fields.model_dump())
        return Profile.model_validate(data)

    async def update_profile(self, fields: ProfileFields) -> Profile:
        data = await self._request("PUT", "/users/profile", json=fields.model_dump())
        return Profile.model_validate(data)

    async def list_users(self) -> list[UserRecord]:
        data = await self._request("GET", "/users/admin")
        return [UserRecord.model_validate(item) for item in data]

    async def set_user_active(self, user_id: int, is_active: bool) -> UserRecord:
        data = await self._request(
            "PUT",
            f"/users/admin/{user_id}/status",
            json={"status": "active" if is_active else "inactive"},
        )
        return UserRecord.model_validate(data)
