import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from civic_portal.auth import jwt_handler, passwords
from civic_portal.auth.dependencies import get_current_actor, get_token_claims
from civic_portal.core import config
from civic_portal.core.errors import AuthenticationError, ValidationError
from civic_portal.core.schemas import Actor, LoginResult, Role, UserRecord
from civic_portal.database import get_db
from civic_portal.models.revoked_token import RevokedToken
from civic_portal.models.user import User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class RegisterRequest(BaseModel):
    email: str
    password: str
    username: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized or '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value


class LoginRequest(BaseModel):
    email: str | None = None
    username: str | None = None
    password: str


def find_user_by_login(db: Session, email: str | None, username: str | None) -> User | None:
    normalized_email = (email or '').strip().lower()
    normalized_username = (username or '').strip()

    if normalized_email:
        return db.query(User).filter(User.email == normalized_email).first()
    if normalized_username:
        return db.query(User).filter(User.username == normalized_username).first()
    return None


@router.post('/register', response_model=UserRecord, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == data.email).first():
        raise ValidationError('An account with this email already exists.')
    if data.username and db.query(User).filter(User.username == data.username).first():
        raise ValidationError('This username is already taken.')

    role = Role.ADMIN if data.email in config.ADMIN_EMAILS else Role.CITIZEN
    user = User(
        email=data.email,
        username=data.username,
        hashed_password=passwords.hash_password(data.password),
        role=role.value,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info('Registered %s user %s.', role.value, user.id)
    return UserRecord.model_validate(user)


@router.post('/login', response_model=LoginResult)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    if not (data.email or data.username):
        raise ValidationError('Email or username is required.')

    user = find_user_by_login(db, data.email, data.username)
    if user is None or not passwords.verify_password(data.password, user.hashed_password):
        raise AuthenticationError('Invalid username, email, or password.')
    if not user.is_active:
        raise AuthenticationError('This account has been deactivated.')

    token, expires_at = jwt_handler.create_access_token(subject=str(user.id), role=user.role)
    return LoginResult(
        access_token=token,
        token_type='bearer',
        expires_at=expires_at,
        user=Actor.model_validate(user),
    )


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(claims: dict = Depends(get_token_claims), db: Session = Depends(get_db)):
    expires_at = None
    if claims.get('exp'):
        expires_at = datetime.fromtimestamp(claims['exp'], tz=timezone.utc)

    db.add(RevokedToken(jti=claims['jti'], expires_at=expires_at))
    db.commit()


@router.get('/verify', response_model=Actor)
def verify(actor: Actor = Depends(get_current_actor)):
    return actor
