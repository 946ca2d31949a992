"""
Handler Factory

Generic CRUD operations for every resource of a schema, addressed through
a single resource-name indexed dispatch table.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, List, Optional

from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from . import const
from .exceptions import (
    DeleteFailed,
    InsertFailed,
    MissingPrimaryKey,
    NotFound,
    QueryFailed,
    UnknownResource,
    UpdateFailed,
)
from .payload import build_payload_schema, kind_field
from .schema import Field, Resource, ResourceSchema

log = logging.getLogger(__name__)


class ResourceHandlers(object):
    """
    The five operations of one resource.

    Payloads use UI field names, storage uses column names; relation
    fields are translated both ways. Payloads are loaded through a
    generated marshmallow schema. Storage and validation errors are
    wrapped with the resource name and never retried.
    """

    def __init__(self, resource: Resource, schema: ResourceSchema, storage,
                 expand_relations: bool = False):
        self.resource = resource
        self.schema = schema
        self.storage = storage
        self.expand_relations = expand_relations
        self.payload_schema = build_payload_schema(resource, schema)
        primary_key = resource.primary_key
        self._identifier_field = (
            kind_field(primary_key, schema) if primary_key is not None else None
        )

    @property
    def name(self) -> str:
        return self.resource.name

    def __repr__(self):
        return f"<ResourceHandlers {self.name}>"

    # -----------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------
    def list(self) -> List[Dict[str, Any]]:
        try:
            records = self.storage.find_many(self.name)
        except SQLAlchemyError as e:
            log.error(const.LOGMSG_ERR_DBI_QUERY_GENERIC, self.name, e)
            raise QueryFailed(self.name, e) from e
        return self._present(records)

    def get_by_id(self, identifier: Any) -> Optional[Dict[str, Any]]:
        """
        :return: The record or None when no row matches the id
        :raises MissingPrimaryKey: when the resource has no primary key
        """
        primary_key = self._require_primary_key()
        try:
            value = self.coerce_identifier(identifier)
        except ValidationError:
            return None
        if value is None:
            return None
        record = self._find(primary_key, value)
        if record is None:
            return None
        return self._present([record])[0]

    def create(self, payload: Mapping) -> Dict[str, Any]:
        """
        Insert a record, return it with generated values.

        :raises InsertFailed: on invalid values or storage constraint errors
        """
        try:
            values = self.translate(payload)
            primary_key = self.resource.primary_key
            if primary_key and values.get(primary_key.storage_column, "") is None:
                values.pop(primary_key.storage_column)
            record = self.storage.insert(self.name, values)
        except (SQLAlchemyError, ValidationError) as e:
            log.error(const.LOGMSG_ERR_DBI_ADD_GENERIC, self.name, e)
            raise InsertFailed(self.name, e) from e
        return self._present([record])[0]

    def update(self, identifier: Any, payload: Mapping) -> Dict[str, Any]:
        """
        Partial update keyed by the primary key, no upsert.

        :raises MissingPrimaryKey: when the resource has no primary key
        :raises NotFound: when no row matches the id, checked before the
            payload is validated
        :raises UpdateFailed: on invalid values or storage constraint errors
        """
        primary_key = self._require_primary_key()
        value = self._identifier_or_not_found(identifier)
        if self._find(primary_key, value) is None:
            raise NotFound(self.name, identifier)
        try:
            values = self.translate(payload, partial=True)
            if values.pop(primary_key.storage_column, None) is not None:
                log.debug(f"Ignoring primary key change on {self.name} {value!r}")
            record = self.storage.update(
                self.name, primary_key.storage_column, value, values
            )
        except (SQLAlchemyError, ValidationError) as e:
            log.error(const.LOGMSG_ERR_DBI_EDIT_GENERIC, self.name, e)
            raise UpdateFailed(self.name, e) from e
        if record is None:
            raise NotFound(self.name, identifier)
        return self._present([record])[0]

    def delete(self, identifier: Any) -> Dict[str, Any]:
        """
        :return: The deleted record
        :raises NotFound: when no row matches the id
        """
        primary_key = self._require_primary_key()
        value = self._identifier_or_not_found(identifier)
        try:
            record = self.storage.delete(self.name, primary_key.storage_column, value)
        except SQLAlchemyError as e:
            log.error(const.LOGMSG_ERR_DBI_DEL_GENERIC, self.name, e)
            raise DeleteFailed(self.name, e) from e
        if record is None:
            raise NotFound(self.name, identifier)
        return self._present([record])[0]

    def _find(self, primary_key: Field, value: Any) -> Optional[Dict[str, Any]]:
        try:
            return self.storage.find_first(self.name, primary_key.storage_column, value)
        except SQLAlchemyError as e:
            log.error(const.LOGMSG_ERR_DBI_QUERY_GENERIC, self.name, e)
            raise QueryFailed(self.name, e) from e

    # -----------------------------------------------------------------
    # Translation
    # -----------------------------------------------------------------
    def translate(self, payload: Mapping, partial: bool = False) -> Dict[str, Any]:
        """
        UI payload -> storage values.

        A relation may be addressed by its UI name or its foreign key
        column, the UI name wins. Keys that match no field are dropped,
        the rest is loaded with :attr:`payload_schema`.

        :raises ValidationError: when a value can't be loaded
        """
        data = {}
        for field in self.resource.fields:
            if field.name in payload:
                data[field.name] = payload[field.name]
            elif field.is_relation and field.storage_column in payload:
                data[field.name] = payload[field.storage_column]
        known = set(self.resource.field_names) | {
            f.storage_column for f in self.resource.relation_fields
        }
        ignored = [key for key in payload if key not in known]
        if ignored:
            log.debug(f"Ignoring unknown {self.name} keys: {ignored}")
        return self.payload_schema().load(data, partial=partial)

    def coerce_identifier(self, identifier: Any) -> Any:
        """
        Coerce an opaque id to the semantic type of the primary key.

        :raises ValidationError: when the id can't be coerced
        """
        self._require_primary_key()
        if identifier is None or (isinstance(identifier, str) and not identifier.strip()):
            return None
        return self._identifier_field.deserialize(identifier)

    def _identifier_or_not_found(self, identifier: Any) -> Any:
        try:
            value = self.coerce_identifier(identifier)
        except ValidationError:
            raise NotFound(self.name, identifier) from None
        if value is None:
            raise NotFound(self.name, identifier)
        return value

    def _require_primary_key(self) -> Field:
        primary_key = self.resource.primary_key
        if primary_key is None:
            raise MissingPrimaryKey(self.name)
        return primary_key

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------
    def _present(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Storage records -> UI records, one level of relation expansion."""
        relation_fields = self.resource.relation_fields
        for field in relation_fields:
            if field.name != field.storage_column:
                for record in records:
                    record[field.name] = record.get(field.storage_column)
        if self.expand_relations and getattr(self.storage, "supports_joins", False):
            for field in relation_fields:
                self._expand(field, records)
        return records

    def _expand(self, field: Field, records: List[Dict[str, Any]]):
        related = self.schema.get(field.related_resource)
        related_pk = related.primary_key if related else None
        if related_pk is None:
            return
        keys = {
            record[field.storage_column]
            for record in records
            if record.get(field.storage_column) is not None
        }
        if not keys:
            return
        try:
            rows = self.storage.find_in(related.name, related_pk.storage_column, keys)
        except Exception as e:
            log.debug(f"Can't expand {self.name}.{field.name}: {e}")
            return
        index = {row.get(related_pk.storage_column): row for row in rows}
        for record in records:
            row = index.get(record.get(field.storage_column))
            if row is not None:
                record[field.name] = row


class HandlerMap(Mapping):
    """
    Resource name -> :class:`ResourceHandlers`.

    Unregistered names raise :class:`UnknownResource`.
    """

    def __init__(self, handlers: Dict[str, ResourceHandlers]):
        self._handlers = dict(handlers)

    def __getitem__(self, name: str) -> ResourceHandlers:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownResource(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, name: Any) -> bool:
        return name in self._handlers

    def get(self, name: str, default: Optional[ResourceHandlers] = None):
        return self._handlers.get(name, default)

    def operation(self, resource: str, operation: str) -> Callable:
        if operation not in const.OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        return getattr(self[resource], operation)

    def dispatch(self, resource: str, operation: str, *args, **kwargs) -> Any:
        return self.operation(resource, operation)(*args, **kwargs)


class HandlerFactory(object):
    """
    Builds the handler map of a schema over a storage accessor.

    :param schema: The resource schema
    :param storage: An object with ``find_many``, ``find_first``,
        ``find_in``, ``insert``, ``update`` and ``delete`` addressed
        by resource name, see :class:`SQLAStorage`
    :param expand_relations: Replace foreign key values by the related
        record on reads, when the storage supports it
    """

    handlers_class = ResourceHandlers

    def __init__(self, schema: ResourceSchema, storage, expand_relations: bool = False):
        self.schema = schema
        self.storage = storage
        self.expand_relations = expand_relations

    def build(self) -> HandlerMap:
        return HandlerMap(
            {
                resource.name: self.handlers_class(
                    resource, self.schema, self.storage, self.expand_relations
                )
                for resource in self.schema
            }
        )
