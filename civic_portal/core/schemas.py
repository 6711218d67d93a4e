"""Domain shapes exchanged across the repository boundary."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field


class Role(str, Enum):
    CITIZEN = "citizen"
    ADMIN = "admin"


class ComplaintStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class ComplaintCategory(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    ROADS = "roads"
    WATER = "water"
    ELECTRICITY = "electricity"
    WASTE = "waste"
    SAFETY = "safety"
    HEALTH = "health"
    EDUCATION = "education"
    PARKS = "parks"
    NOISE = "noise"
    AIR = "air"
    TRAFFIC = "traffic"
    HOUSING = "housing"
    BUSINESS = "business"
    OTHER = "other"


CONTENT_FIELDS = ("title", "description", "category", "location")


class Actor(BaseModel):
    """The authenticated identity invoking an operation."""

    id: int = Field(validation_alias=AliasChoices("id", "_id"))
    role: Role
    email: str | None = None
    username: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    class Config:
        from_attributes = True


class Complaint(BaseModel):
    id: int = Field(validation_alias=AliasChoices("id", "_id"))
    owner_id: int
    title: str
    description: str
    category: ComplaintCategory
    location: str
    status: ComplaintStatus = ComplaintStatus.PENDING
    response: str | None = None
    response_read: bool = False
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def has_response(self) -> bool:
        return bool(self.response and self.response.strip())

    class Config:
        from_attributes = True


class ComplaintDraft(BaseModel):
    title: str
    description: str
    category: ComplaintCategory
    location: str


class UserRecord(BaseModel):
    id: int = Field(validation_alias=AliasChoices("id", "_id"))
    email: str
    username: str | None = None
    role: Role
    is_active: bool = True
    created_at: datetime | None = None
    complaint_count: int = 0

    class Config:
        from_attributes = True


class Profile(BaseModel):
    user_id: int
    full_name: str | None = None
    phone_number: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None

    class Config:
        from_attributes = True


class ProfileFields(BaseModel):
    full_name: str | None = None
    phone_number: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None


class Credentials(BaseModel):
    email: str | None = None
    username: str | None = None
    password: str


class Registration(BaseModel):
    email: str
    password: str
    username: str | None = None


class LoginResult(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime | None = None
    user: Actor


class Session(BaseModel):
    token: str
    user: Actor
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current >= expires_at
