"""
Explicit resource configuration

Marshmallow schemas validating user authored resource configuration
for the config-driven introspection mode.
"""

from collections import Counter

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    pre_load,
    validate,
    validates_schema,
)

from ..schema import Field, FieldKind

SLUG_REGEX = r"^[A-Za-z0-9_\-]+$"


class FieldConfigSchema(Schema):
    name = fields.String(required=True, validate=validate.Length(min=1))
    label = fields.String(load_default=None, allow_none=True)
    kind = fields.Enum(FieldKind, by_value=True, required=True)
    is_primary_key = fields.Boolean(load_default=False)
    related_resource = fields.String(load_default=None, allow_none=True)
    foreign_key_column = fields.String(load_default=None, allow_none=True)

    @validates_schema
    def validate_relation(self, data, **kwargs):
        if data.get("kind") == FieldKind.RELATION:
            if not data.get("related_resource"):
                raise ValidationError(
                    "Relation fields need a related resource", "related_resource"
                )
        elif data.get("related_resource") or data.get("foreign_key_column"):
            raise ValidationError(
                "Only relation fields can reference another resource", "kind"
            )

    @post_load
    def make_field(self, data, **kwargs):
        return Field(**data)


class ResourceConfigSchema(Schema):
    table = fields.Raw(required=True, allow_none=False)
    slug = fields.String(required=True, validate=validate.Regexp(SLUG_REGEX))
    label = fields.String(load_default=None, allow_none=True)
    field_list = fields.List(
        fields.Nested(FieldConfigSchema),
        required=True,
        validate=validate.Length(min=1),
        data_key="fields",
    )

    @validates_schema
    def validate_fields(self, data, **kwargs):
        field_list = data.get("field_list") or []
        counts = Counter(item.name for item in field_list)
        duplicates = sorted(name for name, count in counts.items() if count > 1)
        if duplicates:
            raise ValidationError(f"Duplicate fields: {duplicates}", "fields")
        if len([item for item in field_list if item.is_primary_key]) > 1:
            raise ValidationError("At most one primary key is allowed", "fields")


class AdminConfigSchema(Schema):
    resources = fields.List(
        fields.Nested(ResourceConfigSchema),
        required=True,
        validate=validate.Length(min=1),
    )

    @pre_load
    def wrap_resource_list(self, data, **kwargs):
        if isinstance(data, (list, tuple)):
            return {"resources": list(data)}
        return data

    @validates_schema
    def validate_slugs(self, data, **kwargs):
        resources = data.get("resources") or []
        counts = Counter(resource["slug"] for resource in resources)
        duplicates = sorted(slug for slug, count in counts.items() if count > 1)
        if duplicates:
            raise ValidationError(f"Duplicate slugs: {duplicates}", "resources")
        slugs = set(counts)
        for resource in resources:
            for item in resource["field_list"]:
                if item.is_relation and item.related_resource not in slugs:
                    raise ValidationError(
                        f"{resource['slug']}.{item.name} references unknown "
                        f"resource {item.related_resource}",
                        "resources",
                    )
