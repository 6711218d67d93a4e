import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from civic_portal.auth.dependencies import get_current_actor, require_admin
from civic_portal.core import lifecycle
from civic_portal.core.errors import AuthorizationError, ConflictError, NotFoundError
from civic_portal.core.schemas import Actor, Complaint, ComplaintStatus
from civic_portal.database import get_db
from civic_portal.models.complaint import Complaint as ComplaintRow

router = APIRouter(tags=['complaints'])

logger = logging.getLogger(__name__)


class CreateComplaintRequest(BaseModel):
    title: str
    description: str
    category: str
    location: str


class UpdateContentRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    location: str | None = None
    expected_version: int | None = None

    class Config:
        extra = 'forbid'


class UpdateStatusRequest(BaseModel):
    status: str
    expected_version: int | None = None


class SetResponseRequest(BaseModel):
    response: str
    expected_version: int | None = None


class MarkReadRequest(BaseModel):
    expected_version: int | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def get_complaint_row(db: Session, complaint_id: int) -> ComplaintRow:
    row = db.query(ComplaintRow).filter(ComplaintRow.id == complaint_id).first()
    if row is None:
        raise NotFoundError('Complaint not found.')
    return row


def apply_versioned_update(
    db: Session,
    complaint_id: int,
    expected_version: int | None,
    values: dict[str, Any],
    expected_status: ComplaintStatus | None = None,
) -> ComplaintRow:
    """Write ``values`` only if the stored version still matches ``expected_version``.

    ``expected_status`` must still match the status the lifecycle checks saw.
    """
    values = {name: _column_value(value) for name, value in values.items()}
    values['version'] = ComplaintRow.version + 1

    query = db.query(ComplaintRow).filter(ComplaintRow.id == complaint_id)
    if expected_version is not None:
        query = query.filter(ComplaintRow.version == expected_version)
    if expected_status is not None:
        query = query.filter(ComplaintRow.status == expected_status.value)

    updated = query.update(values, synchronize_session=False)
    if not updated:
        db.rollback()
        get_complaint_row(db, complaint_id)
        raise ConflictError('This complaint was changed by someone else. Refresh and try again.')

    db.commit()
    row = get_complaint_row(db, complaint_id)
    db.refresh(row)
    return row


@router.post('', response_model=Complaint, status_code=status.HTTP_201_CREATED)
def create_complaint(
    data: CreateComplaintRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    lifecycle.check_can_create(actor)
    draft = lifecycle.validate_new_complaint(data.title, data.description, data.category, data.location)

    now = utcnow()
    row = ComplaintRow(
        owner_id=actor.id,
        title=draft.title,
        description=draft.description,
        category=draft.category.value,
        location=draft.location,
        status=ComplaintStatus.PENDING.value,
        response=None,
        response_read=False,
        created_at=now,
        updated_at=now,
        version=1,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    logger.info('Complaint %s submitted by user %s.', row.id, actor.id)
    return row


@router.get('/admin', response_model=list[Complaint])
def list_all_complaints(
    status_filter: str | None = Query(default=None, alias='status'),
    category: str | None = Query(default=None),
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del actor
    query = db.query(ComplaintRow)
    if status_filter:
        query = query.filter(ComplaintRow.status == lifecycle.parse_status(status_filter).value)
    if category:
        query = query.filter(ComplaintRow.category == lifecycle.parse_category(category).value)
    return query.order_by(ComplaintRow.created_at.desc(), ComplaintRow.id.desc()).all()


@router.get('/user/{owner_id}', response_model=list[Complaint])
def list_owner_complaints(
    owner_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if not actor.is_admin and actor.id != owner_id:
        raise AuthorizationError('You can only view your own complaints.')

    return db.query(ComplaintRow).filter(
        ComplaintRow.owner_id == owner_id,
    ).order_by(ComplaintRow.created_at.desc(), ComplaintRow.id.desc()).all()


@router.get('/{complaint_id}', response_model=Complaint)
def get_complaint(
    complaint_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    row = get_complaint_row(db, complaint_id)
    lifecycle.check_can_read(actor, Complaint.model_validate(row))
    return row


@router.patch('/{complaint_id}', response_model=Complaint)
def update_complaint_content(
    complaint_id: int,
    data: UpdateContentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    complaint = Complaint.model_validate(get_complaint_row(db, complaint_id))
    fields = data.model_dump(exclude_unset=True, exclude={'expected_version'})
    values = lifecycle.check_content_edit(actor, complaint, fields)
    values['updated_at'] = utcnow()
    return apply_versioned_update(db, complaint_id, data.expected_version, values, complaint.status)


@router.patch('/{complaint_id}/status', response_model=Complaint)
def update_complaint_status(
    complaint_id: int,
    data: UpdateStatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    row = get_complaint_row(db, complaint_id)
    complaint = Complaint.model_validate(row)
    if not lifecycle.check_transition(actor, complaint, data.status):
        return row

    target = lifecycle.parse_status(data.status)
    updated = apply_versioned_update(
        db,
        complaint_id,
        data.expected_version,
        {'status': target, 'updated_at': utcnow()},
        complaint.status,
    )
    logger.info(
        'Complaint %s moved from %s to %s by admin %s.',
        complaint_id,
        complaint.status.value,
        target.value,
        actor.id,
    )
    return updated


@router.patch('/{complaint_id}/response', response_model=Complaint)
def set_complaint_response(
    complaint_id: int,
    data: SetResponseRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    get_complaint_row(db, complaint_id)
    text = lifecycle.check_response(actor, data.response)
    return apply_versioned_update(
        db,
        complaint_id,
        data.expected_version,
        {'response': text, 'response_read': False, 'updated_at': utcnow()},
    )


@router.post('/{complaint_id}/response/read', response_model=Complaint)
def mark_complaint_response_read(
    complaint_id: int,
    data: MarkReadRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    row = get_complaint_row(db, complaint_id)
    if not lifecycle.check_mark_read(actor, Complaint.model_validate(row)):
        return row

    # The read flag does not bump the version; the version only pins which response was read.
    query = db.query(ComplaintRow).filter(
        ComplaintRow.id == complaint_id,
        ComplaintRow.response.isnot(None),
    )
    if data is not None and data.expected_version is not None:
        query = query.filter(ComplaintRow.version == data.expected_version)
    if not query.update({'response_read': True}, synchronize_session=False):
        db.rollback()
        get_complaint_row(db, complaint_id)
        raise ConflictError('A newer response arrived. Refresh and read it first.')

    db.commit()
    row = get_complaint_row(db, complaint_id)
    db.refresh(row)
    return row


@router.delete('/{complaint_id}')
def delete_complaint(
    complaint_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    row = get_complaint_row(db, complaint_id)
    lifecycle.check_delete(actor, Complaint.model_validate(row))

    deletable = [complaint_status.value for complaint_status in lifecycle.DELETABLE_STATUSES]
    deleted = db.query(ComplaintRow).filter(
        ComplaintRow.id == complaint_id,
        ComplaintRow.status.in_(deletable),
    ).delete(synchronize_session=False)
    if not deleted:
        db.rollback()
        # The complaint was removed or resolved after the check above; report its current state.
        db.expire_all()
        lifecycle.check_delete(actor, Complaint.model_validate(get_complaint_row(db, complaint_id)))
        raise ConflictError('This complaint was changed by someone else. Refresh and try again.')
    db.commit()

    logger.info('Complaint %s deleted by user %s.', complaint_id, actor.id)
    return {'message': 'Complaint deleted successfully'}
