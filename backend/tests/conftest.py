import os

# App startup creates tables on the production engine; keep it in memory for tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from typing import Callable, List, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from pingclub.database import get_session  # noqa: E402
from pingclub.main import app  # noqa: E402
from pingclub.models.participant import Participant  # noqa: E402
from pingclub.models.tournament import Tournament  # noqa: E402
from pingclub.repository import CompetitionRepository  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Models are imported in tests/__init__.py before create_all()
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Schema created and dropped per test
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="repo")
def repo_fixture(session: Session) -> CompetitionRepository:
    return CompetitionRepository(session)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override is set BEFORE TestClient() and stays in place for the entire
    duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="make_tournament")
def make_tournament_fixture(session: Session) -> Callable[..., Tournament]:
    """
    Factory: tournament with `count` real participants seeded 1..count.

    ratings, when given, are assigned in the same order as seeds.
    """

    def _make(
        count: int,
        locked: bool = True,
        name: str = "Club Championship",
        ratings: Optional[List[float]] = None,
        **tournament_fields,
    ) -> Tournament:
        tournament = Tournament(name=name, participants_locked=locked, **tournament_fields)
        session.add(tournament)
        session.commit()
        session.refresh(tournament)
        for i in range(count):
            session.add(
                Participant(
                    tournament_id=tournament.id,
                    display_name=f"Player {i + 1}",
                    seed=i + 1,
                    rating=ratings[i] if ratings else None,
                )
            )
        session.commit()
        return tournament

    return _make
