"""Page admission decisions for the portal.

``decide`` is pure: it only looks at the session it is handed and the
requirement of the page. Token verification happens at the repository; a
rejected token reaches the guard as an absent session.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from civic_portal.core.schemas import Role, Session

LOGIN_PATH = "/login"
CITIZEN_HOME = "/dashboard"
ADMIN_HOME = "/admin"


class Requirement(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_CITIZEN = "authenticated-citizen"
    AUTHENTICATED_ADMIN = "authenticated-admin"


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class RedirectTo:
    path: str
    next: str | None = None


Decision = Allow | RedirectTo

ROUTE_REQUIREMENTS: dict[str, Requirement] = {
    "/": Requirement.PUBLIC,
    "/login": Requirement.PUBLIC,
    "/signup": Requirement.PUBLIC,
    "/forgot-password": Requirement.PUBLIC,
    "/reset-password": Requirement.PUBLIC,
    "/profile": Requirement.AUTHENTICATED_CITIZEN,
    "/notifications": Requirement.AUTHENTICATED_CITIZEN,
    "/dashboard": Requirement.AUTHENTICATED_CITIZEN,
    "/submit-complaint": Requirement.AUTHENTICATED_CITIZEN,
    "/my-complaints": Requirement.AUTHENTICATED_CITIZEN,
    "/admin": Requirement.AUTHENTICATED_ADMIN,
    "/admin/complaints": Requirement.AUTHENTICATED_ADMIN,
    "/admin/users": Requirement.AUTHENTICATED_ADMIN,
}


def has_valid_session(session: Session | None, now: datetime | None = None) -> bool:
    return session is not None and bool(session.token) and not session.is_expired(now)


def decide(
    session: Session | None,
    requirement: Requirement | str,
    destination: str = "/",
    now: datetime | None = None,
) -> Decision:
    requirement = Requirement(requirement)

    if not has_valid_session(session, now):
        if requirement == Requirement.PUBLIC:
            return Allow()
        return RedirectTo(LOGIN_PATH, next=destination)

    role = session.user.role
    if requirement == Requirement.AUTHENTICATED_ADMIN and role != Role.ADMIN:
        return RedirectTo(CITIZEN_HOME)
    if requirement == Requirement.AUTHENTICATED_CITIZEN and role == Role.ADMIN:
        return RedirectTo(ADMIN_HOME)
    return Allow()


def requirement_for(path: str) -> Requirement:
    """Resolve the requirement of a path by its longest registered prefix."""
    candidate = "/" + path.split("?", 1)[0].strip("/")
    if candidate in ROUTE_REQUIREMENTS:
        return ROUTE_REQUIREMENTS[candidate]

    # "/" is public, so it only ever matches exactly.
    while candidate.count("/") > 1:
        candidate = candidate.rsplit("/", 1)[0]
        if candidate in ROUTE_REQUIREMENTS:
            return ROUTE_REQUIREMENTS[candidate]
    return Requirement.AUTHENTICATED


def guard(session: Session | None, path: str, now: datetime | None = None) -> Decision:
    return decide(session, requirement_for(path), destination=path, now=now)
