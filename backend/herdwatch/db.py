from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def build_session_factory(database_url: str) -> sessionmaker:
    connect_args: dict = {}
    engine_kwargs: dict = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=False, future=True, connect_args=connect_args, **engine_kwargs)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


def create_schema(session_factory: sessionmaker) -> None:
    Base.metadata.create_all(bind=session_factory.kw["bind"])
