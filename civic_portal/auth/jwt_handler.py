import uuid
from datetime import datetime, timedelta, timezone

import jwt

from civic_portal.core import config


def create_access_token(
    subject: str,
    role: str,
    expires_minutes: int | None = None,
) -> tuple[str, datetime]:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expire_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "jti": uuid.uuid4().hex,
        "exp": expire,
        "iat": issued_at,
    }
    token = jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)
    return token, expire


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
