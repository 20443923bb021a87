"""Engine and session construction."""

from __future__ import annotations

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from commerce_ingest.db.models import Base, Organization


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine. In-memory SQLite shares one connection across sessions."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, future=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine, default_org_name: str | None = "Default") -> None:
    """Create all tables and make sure organization 1 exists."""
    Base.metadata.create_all(engine)
    if default_org_name is None:
        return
    with Session(engine) as session:
        if session.scalar(select(Organization).where(Organization.id == 1)) is None:
            session.add(Organization(id=1, name=default_org_name))
            session.commit()
