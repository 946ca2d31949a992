import dataclasses

import pytest

from flask_admingen import UnknownResource
from flask_admingen.introspection import introspect
from flask_admingen.schema import (
    Field,
    FieldKind,
    RelationCardinality,
    Resource,
    ResourceSchema,
    title_case,
)


def test_title_case():
    assert title_case("blog_posts") == "Blog Posts"
    assert title_case("users") == "Users"


class TestField:
    def test_defaults(self):
        field = Field(name="title", kind="text")
        assert field.kind is FieldKind.TEXT
        assert field.label == "title"
        assert not field.is_primary_key
        assert field.storage_column == "title"

    def test_relation_defaults(self):
        field = Field(name="author", kind=FieldKind.RELATION, related_resource="users")
        assert field.relation_cardinality is RelationCardinality.MANY_TO_ONE
        assert field.foreign_key_column == "author"

    def test_relation_storage_column(self):
        field = Field.relation("author", "users", foreign_key_column="author_id")
        assert field.is_relation
        assert field.storage_column == "author_id"

    def test_relation_needs_target(self):
        with pytest.raises(ValueError):
            Field(name="author", kind=FieldKind.RELATION)

    def test_scalar_with_relation_attributes(self):
        with pytest.raises(ValueError):
            Field(name="title", kind=FieldKind.TEXT, related_resource="users")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            Field(name="shape", kind="geometry")

    def test_frozen(self):
        field = Field(name="title", kind=FieldKind.TEXT)
        with pytest.raises(dataclasses.FrozenInstanceError):
            field.label = "Title"


class TestResource:
    def test_label_and_primary_key(self):
        resource = Resource(
            name="blog_posts",
            fields=[
                Field(name="id", kind=FieldKind.NUMBER, is_primary_key=True),
                Field(name="title", kind=FieldKind.TEXT),
            ],
        )
        assert resource.label == "Blog Posts"
        assert resource.primary_key.name == "id"
        assert resource.field_names == ("id", "title")
        assert resource.get_field("missing") is None

    def test_needs_fields(self):
        with pytest.raises(ValueError):
            Resource(name="empty", fields=[])

    def test_duplicate_fields(self):
        with pytest.raises(ValueError):
            Resource(
                name="posts",
                fields=[Field(name="id", kind="number"), Field(name="id", kind="text")],
            )

    def test_single_primary_key(self):
        with pytest.raises(ValueError):
            Resource(
                name="posts",
                fields=[
                    Field(name="a", kind="number", is_primary_key=True),
                    Field(name="b", kind="number", is_primary_key=True),
                ],
            )


class TestResourceSchema:
    def test_lookup(self, metadata):
        schema = introspect(metadata)
        assert "posts" in schema
        assert schema.get("comments") is None
        with pytest.raises(UnknownResource):
            schema["comments"]

    def test_unknown_resource_is_a_lookup_error(self, metadata):
        with pytest.raises(LookupError):
            introspect(metadata)["comments"]

    def test_duplicate_resources(self):
        resource = Resource(name="posts", fields=[Field(name="id", kind="number")])
        with pytest.raises(ValueError):
            ResourceSchema([resource, resource])

    def test_to_dict(self, metadata):
        document = introspect(metadata).to_dict()
        users, posts = document["resources"]
        assert users == {
            "name": "users",
            "label": "Users",
            "fields": [
                {"name": "id", "label": "id", "kind": "number", "isPrimaryKey": True},
                {"name": "email", "label": "email", "kind": "text", "isPrimaryKey": False},
            ],
        }
        assert posts["fields"][2]["kind"] == "long_text"
        assert posts["fields"][3] == {
            "name": "author_id",
            "label": "author_id",
            "kind": "relation",
            "isPrimaryKey": False,
            "relatedResource": "users",
            "relationCardinality": "manyToOne",
            "foreignKeyColumn": "author_id",
        }
