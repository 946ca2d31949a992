"""
Payload schemas

Marshmallow load schemas generated per resource. A payload keyed by UI
field names loads into values keyed by storage columns, coerced to the
kind of each field.
"""

import datetime
import decimal
from typing import Dict, Type

from dateutil import parser as date_parser
from marshmallow import EXCLUDE, Schema, fields, pre_load

from .schema import Field, FieldKind, Resource, ResourceSchema


class Number(fields.Float):
    """Integers stay integers, anything else loads as a finite float."""

    def _format_num(self, value):
        if isinstance(value, (int, decimal.Decimal)):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return super()._format_num(value)


class IsoDate(fields.Field):
    """ISO-8601 dates and datetimes, parsed with dateutil."""

    default_error_messages = {"invalid": "Not a valid ISO-8601 date."}

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, datetime.date):
            return value
        try:
            return date_parser.isoparse(str(value).strip())
        except (ValueError, OverflowError) as e:
            raise self.make_error("invalid") from e


class PayloadSchema(Schema):
    """
    Base of the generated resource schemas.

    Empty strings load as None. Blank strings also load as None, except
    for text fields.
    """

    text_keys = frozenset()

    class Meta:
        unknown = EXCLUDE

    @pre_load
    def empty_strings_to_none(self, data, **kwargs):
        loaded = {}
        for key, value in data.items():
            if isinstance(value, str) and (
                value == "" or (key not in self.text_keys and value.strip() == "")
            ):
                value = None
            loaded[key] = value
        return loaded


def kind_field(field: Field, schema: ResourceSchema, **kwargs) -> fields.Field:
    """
    The marshmallow field loading values of a resource field.

    Relation values follow the kind of the related primary key.
    """
    kind = field.kind
    if field.is_relation:
        related = schema.get(field.related_resource)
        related_pk = related.primary_key if related else None
        if related_pk is None or related_pk.is_relation:
            return fields.Raw(allow_none=True, **kwargs)
        kind = related_pk.kind
    if kind in (FieldKind.TEXT, FieldKind.LONG_TEXT):
        return fields.String(allow_none=True, **kwargs)
    if kind == FieldKind.NUMBER:
        return Number(allow_none=True, **kwargs)
    if kind == FieldKind.BOOLEAN:
        return fields.Boolean(allow_none=True, **kwargs)
    if kind == FieldKind.DATE:
        return IsoDate(allow_none=True, **kwargs)
    return fields.Raw(allow_none=True, **kwargs)


def build_payload_schema(resource: Resource, schema: ResourceSchema) -> Type[PayloadSchema]:
    """
    Generate the load schema of a resource.

    Schema attributes are positional, the UI name is the data key and the
    storage column is the loaded key, so field names never shadow
    :class:`Schema` members.
    """
    declared: Dict[str, fields.Field] = {}
    for index, field in enumerate(resource.fields):
        declared[f"field_{index}"] = kind_field(
            field, schema, data_key=field.name, attribute=field.storage_column
        )
    payload_schema = PayloadSchema.from_dict(
        declared, name=f"{resource.name.title()}PayloadSchema"
    )
    payload_schema.text_keys = frozenset(
        f.name
        for f in resource.fields
        if not f.is_relation and f.kind in (FieldKind.TEXT, FieldKind.LONG_TEXT)
    )
    return payload_schema
