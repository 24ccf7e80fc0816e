"""
Shared fixtures for the integration API tests.

Fixtures:
  - engine:          in-memory SQLite (one shared connection) with all tables
  - db_session:      session for seeding and asserting on stored rows
  - session_factory: sessionmaker bound to the test engine
  - client:          httpx.AsyncClient over ASGITransport for scholar.main:app
  - teacher/student: seeded users with profile + role rows
  - auth_headers:    factory building a Bearer header for a user
  - api_key:         plain key of an active integration token owned by ``teacher``
  - school_class:    a class owned by ``teacher``
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scholar.credentials import create_access_token, hash_api_key, hash_password
from scholar.db import Base, get_db
from scholar.main import app
from scholar.models import AuthUser, IntegrationToken, Profile, SchoolClass, StudentProfile, UserRole

TEACHER_PASSWORD = "correct-horse-1"
TEST_API_KEY = "a" * 64


@pytest.fixture
def engine():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	Base.metadata.create_all(engine)
	yield engine
	engine.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture
def override_get_db(session_factory):
	def _get_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()
	return _get_db


@pytest_asyncio.fixture
async def client(override_get_db) -> AsyncGenerator[httpx.AsyncClient, None]:
	app.dependency_overrides[get_db] = override_get_db
	transport = httpx.ASGITransport(app=app)
	async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
		yield ac
	app.dependency_overrides.clear()


def make_user(db, email: str, role: str, full_name: str = "Test User", password: str = TEACHER_PASSWORD) -> AuthUser:
	user = AuthUser(email=email, password_hash=hash_password(password))
	db.add(user)
	db.flush()
	db.add(Profile(id=user.id, full_name=full_name))
	db.add(UserRole(user_id=user.id, role=role))
	if role == "student":
		db.add(StudentProfile(user_id=user.id, weaknesses=["fractions"]))
	db.commit()
	return user


@pytest.fixture
def teacher(db_session) -> AuthUser:
	return make_user(db_session, "ms.rivera@school.org", "teacher", "Ana Rivera")


@pytest.fixture
def student(db_session) -> AuthUser:
	return make_user(db_session, "Jamie.Lee@Students.org", "student", "Jamie Lee")


@pytest.fixture
def auth_headers():
	def _headers(user: AuthUser) -> dict[str, str]:
		return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}
	return _headers


def make_token(db, owner: AuthUser, key: str = TEST_API_KEY, scopes=None, active: bool = True) -> IntegrationToken:
	token = IntegrationToken(
		name="NYCologic sync",
		token_hash=hash_api_key(key),
		is_active=active,
		scopes=scopes,
		created_by=owner.id,
	)
	db.add(token)
	db.commit()
	return token


@pytest.fixture
def api_key(db_session, teacher) -> str:
	make_token(db_session, teacher)
	return TEST_API_KEY


@pytest.fixture
def school_class(db_session, teacher) -> SchoolClass:
	row = SchoolClass(teacher_id=teacher.id, name="Algebra 1", class_code="ALG101", grade_level=8)
	db_session.add(row)
	db_session.commit()
	return row
