"""
Pytest configuration and fixtures.

Provides an in-memory SQLite engine with a small blog data model
(users, posts) and the adapter built over it.
"""

import pytest
from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)

from flask_admingen import create_adapter


@pytest.fixture
def metadata():
    """Users and posts, posts.author_id references users.id"""
    metadata = MetaData()
    Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("email", String(120), unique=True, nullable=False),
    )
    Table(
        "posts",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("title", String(200)),
        Column("content", Text, info={"long_text": True}),
        Column("author_id", Integer, ForeignKey("users.id")),
    )
    return metadata


@pytest.fixture
def engine(metadata):
    engine = create_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def adapter(metadata, engine):
    return create_adapter(tables=metadata, engine=engine)


@pytest.fixture
def handlers(adapter):
    return adapter.handlers


@pytest.fixture
def author(handlers):
    return handlers["users"].create({"email": "ada@example.com"})
