"""
Pytest configuration and shared fixtures
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from polyref.database import Base
from polyref.lifecycle import install
from polyref.registry import registry

from tests import factories
from tests.models import declare_models


@pytest.fixture(autouse=True)
def clean_registry():
    """Fresh registry with the standard declarations for each test."""
    registry.clear()
    declare_models()
    yield registry
    registry.clear()


@pytest.fixture(scope="function")
def db_engine():
    """In-memory database engine"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Session with the polyref lifecycle installed"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    install(SessionLocal)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make(db_session):
    """Factory helpers bound to the test session"""
    return factories.Factory(db_session)
