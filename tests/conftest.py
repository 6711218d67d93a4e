import os
from datetime import datetime, timezone
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-jwt-secret')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('ADMIN_EMAILS', 'clerk@city.gov')

from civic_portal.auth import jwt_handler, passwords  # noqa: E402
from civic_portal.core.errors import ConflictError, NotFoundError  # noqa: E402
from civic_portal.core.schemas import (  # noqa: E402
    Actor,
    Complaint,
    ComplaintDraft,
    ComplaintStatus,
    Role,
)
from civic_portal.database import Base, get_db  # noqa: E402
from civic_portal.models import complaint, profile, revoked_token  # noqa: E402,F401
from civic_portal.models.user import User  # noqa: E402


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(session_factory):
    from civic_portal.main import app as portal_app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    portal_app.dependency_overrides[get_db] = override_get_db
    try:
        yield portal_app
    finally:
        portal_app.dependency_overrides.clear()


def create_user(db, email: str, role: str = 'citizen', password: str = 'correct-horse', **fields) -> User:
    user = User(
        email=email,
        hashed_password=passwords.hash_password(password),
        role=role,
        is_active=fields.pop('is_active', True),
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token, _ = jwt_handler.create_access_token(subject=str(user.id), role=user.role)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def citizen(db) -> User:
    return create_user(db, 'citizen@example.com', username='citizen')


@pytest.fixture
def other_citizen(db) -> User:
    return create_user(db, 'neighbour@example.com', username='neighbour')


@pytest.fixture
def admin(db) -> User:
    return create_user(db, 'clerk@city.gov', role='admin', username='clerk')


CITIZEN = Actor(id=1, role=Role.CITIZEN, email='citizen@example.com')
OTHER_CITIZEN = Actor(id=2, role=Role.CITIZEN, email='neighbour@example.com')
ADMIN = Actor(id=99, role=Role.ADMIN, email='clerk@city.gov')


def make_complaint(**overrides) -> Complaint:
    now = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
    values = {
        'id': 1,
        'owner_id': CITIZEN.id,
        'title': 'Broken streetlight',
        'description': 'The streetlight outside number 12 has been out for a week.',
        'category': 'infrastructure',
        'location': 'Main St',
        'status': ComplaintStatus.PENDING,
        'response': None,
        'response_read': False,
        'created_at': now,
        'updated_at': now,
        'version': 1,
    }
    values.update(overrides)
    return Complaint(**values)


class FakeComplaintRepository:
    """In-memory repository with the version checks of the real service."""

    def __init__(self, owner_id: int = CITIZEN.id) -> None:
        self.owner_id = owner_id
        self.complaints: dict[int, Complaint] = {}
        self.calls: list[str] = []
        self.pending_conflicts = 0
        self._ids = count(1)

    def add(self, complaint: Complaint) -> Complaint:
        self.complaints[complaint.id] = complaint
        return complaint

    def _get(self, complaint_id: int) -> Complaint:
        if complaint_id not in self.complaints:
            raise NotFoundError('Complaint not found.')
        return self.complaints[complaint_id]

    def _write(self, complaint_id: int, expected_version: int, **changes) -> Complaint:
        current = self._get(complaint_id)
        if self.pending_conflicts:
            self.pending_conflicts -= 1
            # Simulate a concurrent writer bumping the version first.
            current = current.model_copy(update={'version': current.version + 1})
            self.complaints[complaint_id] = current
            raise ConflictError('stale version')
        if current.version != expected_version:
            raise ConflictError('stale version')
        changes['version'] = current.version + 1
        changes['updated_at'] = datetime.now(timezone.utc)
        updated = current.model_copy(update=changes)
        self.complaints[complaint_id] = updated
        return updated

    async def create_complaint(self, draft: ComplaintDraft) -> Complaint:
        self.calls.append('create_complaint')
        now = datetime.now(timezone.utc)
        complaint_id = next(self._ids)
        while complaint_id in self.complaints:
            complaint_id = next(self._ids)
        return self.add(
            Complaint(id=complaint_id, owner_id=self.owner_id, created_at=now, updated_at=now, **draft.model_dump())
        )

    async def get_complaint(self, complaint_id: int) -> Complaint:
        self.calls.append('get_complaint')
        return self._get(complaint_id)

    async def list_complaints_by_owner(self, owner_id: int) -> list[Complaint]:
        self.calls.append('list_complaints_by_owner')
        return [complaint for complaint in self.complaints.values() if complaint.owner_id == owner_id]

    async def list_all_complaints(self, status=None, category=None) -> list[Complaint]:
        self.calls.append('list_all_complaints')
        return [
            complaint
            for complaint in self.complaints.values()
            if (status is None or complaint.status == status)
            and (category is None or complaint.category.value == category)
        ]

    async def update_status(self, complaint_id, status, expected_version) -> Complaint:
        self.calls.append('update_status')
        return self._write(complaint_id, expected_version, status=status)

    async def set_response(self, complaint_id, text, expected_version) -> Complaint:
        self.calls.append('set_response')
        return self._write(complaint_id, expected_version, response=text, response_read=False)

    async def update_content(self, complaint_id, fields, expected_version) -> Complaint:
        self.calls.append('update_content')
        return self._write(complaint_id, expected_version, **fields)

    async def mark_response_read(self, complaint_id, expected_version) -> Complaint:
        self.calls.append('mark_response_read')
        current = self._get(complaint_id)
        if current.version != expected_version:
            raise ConflictError('stale version')
        updated = current.model_copy(update={'response_read': True})
        self.complaints[complaint_id] = updated
        return updated

    async def delete_complaint(self, complaint_id) -> None:
        self.calls.append('delete_complaint')
        self._get(complaint_id)
        del self.complaints[complaint_id]


@pytest.fixture
def repository() -> FakeComplaintRepository:
    return FakeComplaintRepository()
