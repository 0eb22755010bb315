"""Shared fixtures: a throwaway SQLite database per test and seeded staff accounts."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loandesk import models  # noqa: F401
from loandesk.database import Base
from loandesk.models.user import User, UserRole
from loandesk.services.actor import Actor


def make_sqlite_engine(path, *, immediate: bool = False):
    """Engine on a file database.

    With *immediate*, every transaction takes the write lock up front so
    concurrent writers queue on the busy timeout instead of failing.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", connect_args={"timeout": 30})
    if immediate:
        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    return engine


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "loandesk.db"


@pytest_asyncio.fixture
async def engine(db_path):
    engine = make_sqlite_engine(db_path)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db):
    staff = {
        "admin": User(email="admin@loandesk.test", display_name="Asha Admin", role=UserRole.ADMIN),
        "md": User(email="md@loandesk.test", display_name="Meera Director", role=UserRole.MD),
        "agent": User(email="agent@loandesk.test", display_name="Ravi Agent", role=UserRole.AGENT),
        "employee": User(email="emp@loandesk.test", display_name="Emp One", role=UserRole.EMPLOYEE),
        "retired_admin": User(
            email="old@loandesk.test", display_name="Old Admin", role=UserRole.ADMIN, is_active=False,
        ),
    }
    db.add_all(staff.values())
    await db.commit()
    return staff


def actor_of(user: User) -> Actor:
    return Actor(uid=user.id, role=user.role, name=user.display_name)


@pytest.fixture
def agent_actor(users):
    return actor_of(users["agent"])


@pytest.fixture
def admin_actor(users):
    return actor_of(users["admin"])


def quotation_payload(**overrides):
    data = {
        "client_id": "client-001",
        "client_name": "Kavya Rao",
        "loan_type": "personal",
        "loan_amount": 500000,
        "interest_rate": 12,
        "tenure": 60,
    }
    data.update(overrides)
    return data


def loan_payload(**overrides):
    data = {
        "client_id": "client-001",
        "client_name": "Kavya Rao",
        "loan_type": "home",
        "loan_amount": 1200000,
        "interest_rate": 9.5,
        "tenure": 120,
    }
    data.update(overrides)
    return data


async def drop_table(db, name: str) -> None:
    """Remove a table so every statement against it fails."""
    await db.execute(text(f"DROP TABLE {name}"))
    await db.commit()
