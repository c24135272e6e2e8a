"""
polyref/database.py

Default persistence wiring - engine, session factory and declarative base.
Sessions created from SessionLocal run the polyref lifecycle on flush.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from polyref.config import settings
from polyref.declarations import setup_models
from polyref.lifecycle import install


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.ECHO_SQL,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
install(SessionLocal)

Base = declarative_base()


def get_db():
    """Yield a session and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Create the tables of every model on Base and register their relations.

    Args:
        bind: Engine or connection (defaults to the module engine)
    """
    Base.metadata.create_all(bind=bind or engine)
    setup_models(*[mapper.class_ for mapper in Base.registry.mappers])
