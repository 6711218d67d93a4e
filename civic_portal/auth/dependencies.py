import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from civic_portal.auth import jwt_handler
from civic_portal.core.errors import AuthenticationError, AuthorizationError
from civic_portal.core.schemas import Actor
from civic_portal.database import get_db
from civic_portal.models.revoked_token import RevokedToken
from civic_portal.models.user import User

security = HTTPBearer(auto_error=False)


def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication token is required.")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Your session has expired. Please log in again.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token.") from exc

    if not payload.get("sub") or not payload.get("jti"):
        raise AuthenticationError("Invalid token subject.")

    revoked = db.query(RevokedToken).filter(RevokedToken.jti == payload["jti"]).first()
    if revoked is not None:
        raise AuthenticationError("This session has been logged out.")
    return payload


def get_current_user(
    claims: dict = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> User:
    try:
        user_id = int(claims["sub"])
    except ValueError as exc:
        raise AuthenticationError("Invalid token subject.") from exc

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthenticationError("User not found.")
    if not user.is_active:
        raise AuthenticationError("This account has been deactivated.")
    return user


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    return Actor.model_validate(current_user)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can perform this action.")
    return actor
