# tests/conftest.py

import os
import tempfile

# Settings and the engine are built at import time, so the test database has to be
# configured before anything from equiphub is imported.
_TEST_DIR = tempfile.mkdtemp(prefix="equiphub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test_equiphub.db')}"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["JWT_SECRET"] = "test-secret"

from typing import Callable, Dict, Generator, List, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from equiphub.db import Base, SessionLocal, engine  # noqa: E402
from equiphub.main import app  # noqa: E402
from equiphub.auth.security import create_access_token, get_password_hash  # noqa: E402
from equiphub.models.models import (  # noqa: E402
    Equipment,
    Project,
    ProjectMember,
    Role,
    User,
)

MANAGER_PERMISSIONS = {"equipment:access": True, "equipment:read": True, "equipment:assign": True}
READER_PERMISSIONS = {"equipment:access": True, "equipment:read": True}


# --- Database fixtures ---
@pytest.fixture(autouse=True)
def reset_database() -> Generator[None, None, None]:
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


# --- User / role fixtures ---
@pytest.fixture
def user_factory(db_session: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _create(
        username: Optional[str] = None,
        role_name: Optional[str] = None,
        permissions: Optional[Dict[str, bool]] = None,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            name=username.title(),
            password_hash=get_password_hash("password123"),
            is_active=is_active,
        )
        if role_name:
            role = db_session.query(Role).filter(Role.name == role_name).first()
            if role is None:
                role = Role(name=role_name, permissions=permissions or {})
                db_session.add(role)
            user.roles.append(role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create


@pytest.fixture
def admin_user(user_factory) -> User:
    return user_factory("admin", role_name="admin")


@pytest.fixture
def manager_user(user_factory) -> User:
    return user_factory("manager", role_name="project_manager", permissions=MANAGER_PERMISSIONS)


@pytest.fixture
def reader_user(user_factory) -> User:
    return user_factory("reader", role_name="technician", permissions=READER_PERMISSIONS)


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers


# --- Domain data fixtures ---
@pytest.fixture
def project_factory(db_session: Session) -> Callable[..., Project]:
    def _create(name: str = "Project", managers: Optional[List[User]] = None, members: Optional[List[User]] = None) -> Project:
        project = Project(name=name, location="Site")
        db_session.add(project)
        db_session.flush()
        for user in managers or []:
            db_session.add(ProjectMember(project_id=project.id, user_id=user.id, role="manager"))
        for user in members or []:
            db_session.add(ProjectMember(project_id=project.id, user_id=user.id, role="member"))
        db_session.commit()
        db_session.refresh(project)
        return project

    return _create


@pytest.fixture
def equipment_factory(db_session: Session) -> Callable[..., Equipment]:
    counter = {"n": 0}

    def _create(name: Optional[str] = None, status: str = "operational") -> Equipment:
        counter["n"] += 1
        equipment = Equipment(
            name=name or f"Excavator {counter['n']}",
            code=f"EQ-{counter['n']:03d}",
            status=status,
        )
        db_session.add(equipment)
        db_session.commit()
        db_session.refresh(equipment)
        return equipment

    return _create
