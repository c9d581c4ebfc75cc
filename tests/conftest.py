from collections.abc import Generator
import io

import pytest
from rich.console import Console
from sqlalchemy.orm import Session, sessionmaker

from conveyor_belt.database import build_session_factory
from support import Base, seed_users


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
def session_factory(database_url: str) -> sessionmaker[Session]:
    factory = build_session_factory(database_url)
    Base.metadata.create_all(factory.kw["bind"])
    return factory


@pytest.fixture()
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as db:
        yield db


@pytest.fixture()
def seeded(session: Session) -> Session:
    seed_users(session)
    return session


@pytest.fixture()
def console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)
