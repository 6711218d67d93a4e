from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from civic_portal.auth.dependencies import get_current_user, require_admin
from civic_portal.core.errors import InvalidStateError, NotFoundError, ValidationError
from civic_portal.core.profiles import clean_profile_fields
from civic_portal.core.schemas import Actor, Profile, ProfileFields, UserRecord
from civic_portal.database import get_db
from civic_portal.models.complaint import Complaint as ComplaintRow
from civic_portal.models.profile import Profile as ProfileRow
from civic_portal.models.user import User

router = APIRouter(tags=['users'])

USER_STATUSES = {'active': True, 'inactive': False}


class UpdateUserStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_STATUSES:
            raise ValueError('Status must be "active" or "inactive".')
        return normalized


def get_profile_row(db: Session, user_id: int) -> ProfileRow | None:
    return db.query(ProfileRow).filter(ProfileRow.user_id == user_id).first()


def to_user_record(user: User, complaint_count: int = 0) -> UserRecord:
    record = UserRecord.model_validate(user)
    return record.model_copy(update={'complaint_count': complaint_count})


@router.get('/profile', response_model=Profile)
def get_my_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = get_profile_row(db, current_user.id)
    if profile is None:
        raise NotFoundError('Profile not found.')
    return profile


@router.post('/profile', response_model=Profile, status_code=status.HTTP_201_CREATED)
def create_my_profile(
    data: ProfileFields,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if get_profile_row(db, current_user.id) is not None:
        raise InvalidStateError('Profile already exists.')

    profile = ProfileRow(user_id=current_user.id, **clean_profile_fields(data).model_dump())
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@router.put('/profile', response_model=Profile)
def update_my_profile(
    data: ProfileFields,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = get_profile_row(db, current_user.id)
    if profile is None:
        raise NotFoundError('Profile not found.')

    for name, value in clean_profile_fields(data).model_dump().items():
        setattr(profile, name, value)
    db.commit()
    db.refresh(profile)
    return profile


@router.get('/admin', response_model=list[UserRecord])
def list_users(actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    del actor
    complaint_counts = dict(
        db.query(ComplaintRow.owner_id, func.count(ComplaintRow.id))
        .group_by(ComplaintRow.owner_id)
        .all()
    )
    users = db.query(User).order_by(User.created_at.asc(), User.id.asc()).all()
    return [to_user_record(user, complaint_counts.get(user.id, 0)) for user in users]


@router.put('/admin/{user_id}/status', response_model=UserRecord)
def update_user_status(
    user_id: int,
    data: UpdateUserStatusRequest,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError('User not found.')
    if user.id == actor.id and not USER_STATUSES[data.status]:
        raise ValidationError('Admins cannot deactivate their own account.')

    user.is_active = USER_STATUSES[data.status]
    db.commit()
    db.refresh(user)

    complaint_count = db.query(func.count(ComplaintRow.id)).filter(ComplaintRow.owner_id == user.id).scalar()
    return to_user_record(user, complaint_count or 0)
