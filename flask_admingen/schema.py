"""
Resource Schema

The immutable, UI consumable description of every resource and field,
built once at startup by the introspector and shared by all handlers.
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from marshmallow import Schema, fields, post_dump

from . import const
from .exceptions import UnknownResource

log = logging.getLogger(__name__)


class FieldKind(str, Enum):
    """Closed set of UI field kinds."""
    TEXT = const.KIND_TEXT
    LONG_TEXT = const.KIND_LONG_TEXT
    NUMBER = const.KIND_NUMBER
    BOOLEAN = const.KIND_BOOLEAN
    DATE = const.KIND_DATE
    RELATION = const.KIND_RELATION


class RelationCardinality(str, Enum):
    MANY_TO_ONE = const.CARDINALITY_MANY_TO_ONE


def title_case(name: str) -> str:
    """Generate a human-readable display name from an identifier."""
    return name.replace("_", " ").strip().title()


@dataclass(frozen=True)
class Field:
    """One column or relationship exposed to the UI."""
    name: str
    kind: FieldKind
    label: Optional[str] = None
    is_primary_key: bool = False
    related_resource: Optional[str] = None
    relation_cardinality: Optional[RelationCardinality] = None
    foreign_key_column: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", FieldKind(self.kind))
        if self.label is None:
            object.__setattr__(self, "label", self.name)
        if self.kind == FieldKind.RELATION:
            if not self.related_resource:
                raise ValueError(f"Relation field {self.name} needs a related resource")
            if self.relation_cardinality is None:
                object.__setattr__(
                    self, "relation_cardinality", RelationCardinality.MANY_TO_ONE
                )
            if self.foreign_key_column is None:
                object.__setattr__(self, "foreign_key_column", self.name)
        elif self.related_resource or self.foreign_key_column:
            raise ValueError(f"Scalar field {self.name} can't carry relation attributes")

    @classmethod
    def relation(
        cls,
        name: str,
        related_resource: str,
        foreign_key_column: Optional[str] = None,
        label: Optional[str] = None,
        is_primary_key: bool = False,
    ) -> "Field":
        return cls(
            name=name,
            kind=FieldKind.RELATION,
            label=label,
            is_primary_key=is_primary_key,
            related_resource=related_resource,
            relation_cardinality=RelationCardinality.MANY_TO_ONE,
            foreign_key_column=foreign_key_column or name,
        )

    @property
    def is_relation(self) -> bool:
        return self.kind == FieldKind.RELATION

    @property
    def storage_column(self) -> str:
        """The storage column carrying this field's value."""
        return self.foreign_key_column if self.is_relation else self.name


@dataclass(frozen=True)
class Resource:
    """One table exposed to the UI, with its ordered fields."""
    name: str
    fields: Tuple[Field, ...]
    label: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        if self.label is None:
            object.__setattr__(self, "label", title_case(self.name))
        if not self.fields:
            raise ValueError(f"Resource {self.name} has no fields")
        names = [f.name for f in self.fields]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(
                f"Resource {self.name} has duplicate fields: {sorted(duplicates)}"
            )
        if len([f for f in self.fields if f.is_primary_key]) > 1:
            raise ValueError(f"Resource {self.name} has more than one primary key")

    @property
    def primary_key(self) -> Optional[Field]:
        for item in self.fields:
            if item.is_primary_key:
                return item
        return None

    @property
    def relation_fields(self) -> Tuple[Field, ...]:
        return tuple(f for f in self.fields if f.is_relation)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get_field(self, name: str) -> Optional[Field]:
        for item in self.fields:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class ResourceSchema:
    """
    Ordered, immutable sequence of resources.

    Lookups by name go through ``get`` (returns None) or item access
    (raises :class:`UnknownResource`).
    """
    resources: Tuple[Resource, ...] = ()
    _index: Dict[str, Resource] = dataclass_field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        resources = tuple(self.resources)
        object.__setattr__(self, "resources", resources)
        index = {}
        for resource in resources:
            if resource.name in index:
                raise ValueError(f"Duplicate resource name: {resource.name}")
            index[resource.name] = resource
        object.__setattr__(self, "_index", index)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.resources)

    def __len__(self) -> int:
        return len(self.resources)

    def __contains__(self, name: Any) -> bool:
        return name in self._index

    def __getitem__(self, name: str) -> Resource:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownResource(name) from None

    def get(self, name: str) -> Optional[Resource]:
        return self._index.get(name)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._index)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the ``/_schema`` document consumed by the UI."""
        return ResourceSchemaSerializer().dump({"resources": self.resources})


class FieldSerializer(Schema):
    name = fields.String()
    label = fields.String()
    kind = fields.Enum(FieldKind, by_value=True)
    is_primary_key = fields.Boolean(data_key="isPrimaryKey")
    related_resource = fields.String(data_key="relatedResource")
    relation_cardinality = fields.Enum(
        RelationCardinality, by_value=True, data_key="relationCardinality"
    )
    foreign_key_column = fields.String(data_key="foreignKeyColumn")

    @post_dump
    def remove_empty_relation_keys(self, data, **kwargs):
        return {key: value for key, value in data.items() if value is not None}


class ResourceSerializer(Schema):
    name = fields.String()
    label = fields.String()
    fields_ = fields.List(
        fields.Nested(FieldSerializer), attribute="fields", data_key="fields"
    )


class ResourceSchemaSerializer(Schema):
    resources = fields.List(fields.Nested(ResourceSerializer))
