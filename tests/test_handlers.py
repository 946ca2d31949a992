import datetime

import pytest
from marshmallow import ValidationError
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
)
from sqlalchemy.exc import OperationalError

from flask_admingen import (
    HandlerFactory,
    InsertFailed,
    MissingPrimaryKey,
    NotFound,
    QueryFailed,
    UnknownResource,
    UpdateFailed,
    create_adapter,
)
from flask_admingen.payload import build_payload_schema
from flask_admingen.schema import Field, FieldKind, Resource, ResourceSchema


class TestPayloadSchema:
    @pytest.fixture
    def events(self):
        resource = Resource(
            name="events",
            fields=[
                Field(name="id", kind=FieldKind.NUMBER, is_primary_key=True),
                Field(name="title", kind=FieldKind.TEXT),
                Field(name="public", kind=FieldKind.BOOLEAN),
                Field(name="happened_on", kind=FieldKind.DATE),
                Field.relation("venue", "events", foreign_key_column="venue_id"),
            ],
        )
        return build_payload_schema(resource, ResourceSchema([resource]))

    @pytest.mark.parametrize(
        "value, expected",
        [("42", 42), (" 7 ", 7), ("2.5", 2.5), (3, 3), ("", None), (" ", None), (None, None)],
    )
    def test_number(self, events, value, expected):
        assert events().load({"id": value}) == {"id": expected}

    @pytest.mark.parametrize("value", ["abc", "nan", "inf", float("inf"), True])
    def test_invalid_number(self, events, value):
        with pytest.raises(ValidationError) as excinfo:
            events().load({"id": value})
        assert "id" in excinfo.value.messages

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("off", False), ("1", True), (0, False), ("", None)],
    )
    def test_boolean(self, events, value, expected):
        assert events().load({"public": value})["public"] is expected

    def test_invalid_boolean(self, events):
        with pytest.raises(ValidationError):
            events().load({"public": "maybe"})

    def test_date(self, events):
        loaded = events().load({"happened_on": "2024-05-01"})
        assert loaded["happened_on"] == datetime.datetime(2024, 5, 1)
        assert events().load({"happened_on": ""})["happened_on"] is None

    def test_text_keeps_blank_strings(self, events):
        assert events().load({"title": "  "}) == {"title": "  "}
        assert events().load({"title": ""}) == {"title": None}

    def test_relation_loads_to_storage_column(self, events):
        assert events().load({"venue": "3"}) == {"venue_id": 3}

    def test_unknown_keys_are_excluded(self, events):
        assert events().load({"rating": 5}) == {}


class TestCreateAndRead:
    def test_create_returns_generated_id(self, handlers, author):
        post = handlers["posts"].create({"title": "Hi", "author_id": author["id"]})
        assert post["id"] is not None
        assert post["title"] == "Hi"
        assert post["author_id"] == author["id"]
        assert handlers["posts"].get_by_id(post["id"]) == post

    def test_string_values_are_coerced(self, handlers, author):
        post = handlers["posts"].create(
            {"id": "", "title": "Hi", "author_id": str(author["id"])}
        )
        assert post["author_id"] == author["id"]

    def test_empty_strings_are_stored_as_null(self, handlers):
        post = handlers["posts"].create({"title": "", "content": "", "author_id": ""})
        assert post["title"] is None
        assert post["content"] is None
        assert post["author_id"] is None

    def test_unknown_keys_are_ignored(self, handlers):
        post = handlers["posts"].create({"title": "Hi", "rating": 5})
        assert "rating" not in post

    def test_list(self, handlers, author):
        handlers["posts"].create({"title": "One", "author_id": author["id"]})
        handlers["posts"].create({"title": "Two", "author_id": author["id"]})
        assert [p["title"] for p in handlers["posts"].list()] == ["One", "Two"]

    def test_list_empty(self, handlers):
        assert handlers["posts"].list() == []

    def test_get_by_id_not_found(self, handlers):
        assert handlers["posts"].get_by_id(999) is None

    def test_get_by_id_accepts_string_ids(self, handlers, author):
        assert handlers["users"].get_by_id(str(author["id"]))["email"] == "ada@example.com"

    def test_get_by_id_invalid_id(self, handlers):
        assert handlers["posts"].get_by_id("not-a-number") is None

    def test_not_null_violation_names_resource(self, handlers):
        with pytest.raises(InsertFailed) as excinfo:
            handlers["users"].create({})
        assert "users" in str(excinfo.value)
        assert excinfo.value.resource == "users"

    def test_unique_violation(self, handlers, author):
        with pytest.raises(InsertFailed):
            handlers["users"].create({"email": author["email"]})

    def test_invalid_number_fails_insert(self, handlers):
        with pytest.raises(InsertFailed) as excinfo:
            handlers["posts"].create({"title": "Hi", "author_id": "abc"})
        assert "author_id" in str(excinfo.value)
        assert isinstance(excinfo.value.cause, ValidationError)
        assert handlers["posts"].list() == []


class TestUpdateAndDelete:
    def test_partial_update(self, handlers, author):
        post = handlers["posts"].create(
            {"title": "Draft", "content": "Body", "author_id": author["id"]}
        )
        updated = handlers["posts"].update(post["id"], {"title": "Final"})
        assert updated["title"] == "Final"
        assert updated["content"] == "Body"
        assert updated["author_id"] == author["id"]

    def test_update_clears_with_empty_string(self, handlers, author):
        post = handlers["posts"].create({"title": "Hi", "author_id": author["id"]})
        updated = handlers["posts"].update(post["id"], {"author_id": ""})
        assert updated["author_id"] is None

    def test_update_ignores_primary_key_change(self, handlers):
        post = handlers["posts"].create({"title": "Hi"})
        updated = handlers["posts"].update(post["id"], {"id": 500, "title": "Moved"})
        assert updated["id"] == post["id"]
        assert handlers["posts"].get_by_id(500) is None

    def test_update_missing_row_is_not_an_upsert(self, handlers):
        with pytest.raises(NotFound) as excinfo:
            handlers["posts"].update(999, {"title": "Ghost"})
        assert excinfo.value.resource == "posts"
        assert handlers["posts"].list() == []

    def test_update_missing_row_is_checked_before_validation(self, handlers):
        with pytest.raises(NotFound):
            handlers["posts"].update(999, {"author_id": "abc"})

    def test_update_invalid_value(self, handlers):
        post = handlers["posts"].create({"title": "Hi"})
        with pytest.raises(UpdateFailed):
            handlers["posts"].update(post["id"], {"author_id": "abc"})

    def test_update_constraint_violation(self, handlers, author):
        other = handlers["users"].create({"email": "grace@example.com"})
        with pytest.raises(UpdateFailed) as excinfo:
            handlers["users"].update(other["id"], {"email": author["email"]})
        assert "users" in str(excinfo.value)

    def test_delete_returns_record(self, handlers):
        post = handlers["posts"].create({"title": "Hi"})
        deleted = handlers["posts"].delete(post["id"])
        assert deleted == post
        assert handlers["posts"].get_by_id(post["id"]) is None

    def test_delete_missing_row(self, handlers):
        with pytest.raises(NotFound):
            handlers["posts"].delete(999)

    def test_delete_invalid_id(self, handlers):
        with pytest.raises(NotFound):
            handlers["posts"].delete("abc")


class TestDispatch:
    def test_every_resource_has_every_operation(self, handlers):
        assert set(handlers) == {"users", "posts"}
        for name in handlers:
            for operation in ("list", "get_by_id", "create", "update", "delete"):
                assert callable(handlers.operation(name, operation))

    def test_dispatch(self, handlers, author):
        assert handlers.dispatch("users", "get_by_id", author["id"]) == author

    def test_unknown_resource(self, handlers):
        with pytest.raises(UnknownResource):
            handlers["comments"]
        with pytest.raises(UnknownResource):
            handlers.dispatch("comments", "list")

    def test_unknown_operation(self, handlers):
        with pytest.raises(ValueError):
            handlers.operation("posts", "truncate")

    def test_membership_and_get_for_unknown_names(self, handlers):
        assert "posts" in handlers
        assert "comments" not in handlers
        assert handlers.get("comments") is None
        assert handlers.get("posts") is handlers["posts"]


class TestMissingPrimaryKey:
    @pytest.fixture
    def logs(self):
        metadata = MetaData()
        Table("logs", metadata, Column("message", String(200)))
        engine = create_engine("sqlite://")
        metadata.create_all(engine)
        yield create_adapter(metadata, engine).handlers["logs"]
        engine.dispose()

    def test_list_and_create_still_work(self, logs):
        logs.create({"message": "started"})
        assert logs.list() == [{"message": "started"}]

    @pytest.mark.parametrize("operation", ["get_by_id", "delete"])
    def test_id_operations_fail(self, logs, operation):
        with pytest.raises(MissingPrimaryKey) as excinfo:
            getattr(logs, operation)(1)
        assert str(excinfo.value) == "No primary key found for resource: logs"

    def test_update_fails(self, logs):
        with pytest.raises(MissingPrimaryKey):
            logs.update(1, {"message": "x"})


class TestScalarKinds:
    @pytest.fixture
    def events(self):
        metadata = MetaData()
        Table(
            "events",
            metadata,
            Column("id", Integer, primary_key=True),
            Column("public", Boolean),
            Column("happened_on", Date),
            Column("created_at", DateTime),
            Column("price", Numeric(10, 2, asdecimal=False)),
        )
        engine = create_engine("sqlite://")
        metadata.create_all(engine)
        yield create_adapter(metadata, engine).handlers["events"]
        engine.dispose()

    def test_values_round_trip(self, events):
        event = events.create(
            {
                "public": "yes",
                "happened_on": "2024-05-01",
                "created_at": "2024-05-01T10:30:00",
                "price": "9.5",
            }
        )
        assert event["public"] is True
        assert event["happened_on"] == "2024-05-01"
        assert event["created_at"] == "2024-05-01T10:30:00"
        assert event["price"] == 9.5

    def test_invalid_date(self, events):
        with pytest.raises(InsertFailed):
            events.create({"happened_on": "yesterday"})


class TestRelationExpansion:
    def test_disabled_by_default(self, handlers, author):
        post = handlers["posts"].create({"title": "Hi", "author_id": author["id"]})
        assert handlers["posts"].get_by_id(post["id"])["author_id"] == author["id"]

    def test_expanded_reads(self, metadata, engine):
        handlers = create_adapter(metadata, engine, expand_relations=True).handlers
        author = handlers["users"].create({"email": "ada@example.com"})
        handlers["posts"].create({"title": "One", "author_id": author["id"]})
        handlers["posts"].create({"title": "Orphan"})
        posts = handlers["posts"].list()
        assert posts[0]["author_id"] == author
        assert posts[1]["author_id"] is None

    def test_expansion_failure_falls_back_to_keys(self, metadata, engine):
        class BrokenJoins:
            supports_joins = True

            def __init__(self, storage):
                self.storage = storage

            def __getattr__(self, name):
                return getattr(self.storage, name)

            def find_in(self, resource, column, values):
                raise OperationalError("SELECT", {}, Exception("no such table"))

        adapter = create_adapter(metadata, engine)
        author = adapter.handlers["users"].create({"email": "ada@example.com"})
        adapter.handlers["posts"].create({"title": "Hi", "author_id": author["id"]})
        storage = BrokenJoins(adapter.handlers["posts"].storage)
        handlers = HandlerFactory(adapter.schema, storage, expand_relations=True).build()
        assert handlers["posts"].list()[0]["author_id"] == author["id"]

    def test_storage_without_joins_is_not_expanded(self, metadata, engine):
        adapter = create_adapter(metadata, engine)
        author = adapter.handlers["users"].create({"email": "ada@example.com"})
        adapter.handlers["posts"].create({"title": "Hi", "author_id": author["id"]})
        storage = adapter.handlers["posts"].storage
        storage.supports_joins = False
        handlers = HandlerFactory(adapter.schema, storage, expand_relations=True).build()
        assert handlers["posts"].list()[0]["author_id"] == author["id"]


class TestStorageErrors:
    class FailingStorage:
        def __getattr__(self, name):
            def fail(*args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

            return fail

    @pytest.fixture
    def notes(self):
        resource = Resource(
            name="notes",
            fields=[
                Field(name="id", kind=FieldKind.NUMBER, is_primary_key=True),
                Field(name="body", kind=FieldKind.TEXT),
            ],
        )
        schema = ResourceSchema([resource])
        return HandlerFactory(schema, self.FailingStorage()).build()["notes"]

    def test_list(self, notes):
        with pytest.raises(QueryFailed) as excinfo:
            notes.list()
        assert "notes" in str(excinfo.value)

    def test_get_by_id(self, notes):
        with pytest.raises(QueryFailed):
            notes.get_by_id(1)

    def test_create(self, notes):
        with pytest.raises(InsertFailed):
            notes.create({"body": "x"})
