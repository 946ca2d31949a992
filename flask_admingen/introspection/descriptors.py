"""
Storage adapter boundary

Table metadata comes in several shapes (SQLAlchemy tables, declarative
models, Inspector-like mappings). Everything is normalized here into small
frozen descriptors so that inference code never inspects object shapes.
"""

import logging
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import Column, MetaData, Table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import MANYTOONE
from sqlalchemy.types import TypeEngine

from ..const import LONG_TEXT_MARKER
from ..exceptions import NotATable

log = logging.getLogger(__name__)


class ColumnSource(Enum):
    """Tag of the metadata shape a column was normalized from."""
    SQLA = "sqla"
    MAPPING = "mapping"


@dataclass(frozen=True)
class RawForeignKey:
    """A declared reference from ``source_columns`` to ``target``.

    ``target`` is whatever the metadata carried: a storage table name,
    a SQLAlchemy table or a model. The registry canonicalizes it.
    """
    source_columns: Tuple[str, ...]
    target: Any


@dataclass(frozen=True)
class RawRelation:
    """A named relation hint, found next to a table."""
    name: str
    target: Any
    local_columns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RawColumn:
    name: str
    source: ColumnSource
    type_tag: str
    primary_key: bool = False
    sql_type: Optional[TypeEngine] = None
    long_text: bool = False
    foreign_keys: Tuple[Any, ...] = ()
    references: Optional[Callable[[], Any]] = None


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    storage_name: str
    handle: Any
    columns: Tuple[RawColumn, ...]
    foreign_keys: Tuple[RawForeignKey, ...] = ()
    relations: Tuple[RawRelation, ...] = ()
    table: Optional[Table] = None

    def get_column(self, name: str) -> Optional[RawColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


def _type_tag(sql_type: Any) -> str:
    if isinstance(sql_type, TypeEngine):
        return getattr(sql_type, "__visit_name__", type(sql_type).__name__).lower()
    if isinstance(sql_type, type) and issubclass(sql_type, TypeEngine):
        return getattr(sql_type, "__visit_name__", sql_type.__name__).lower()
    return str(sql_type or "").lower()


def _parse_target_fullname(fullname: str) -> str:
    """``"public.users.id"`` -> ``"users"``"""
    parts = fullname.split(".")
    return parts[-2] if len(parts) >= 2 else parts[0]


def _column_fk_target(foreign_key) -> Any:
    try:
        return foreign_key.column.table
    except SQLAlchemyError:
        # referenced table is not part of this MetaData
        return _parse_target_fullname(foreign_key.target_fullname)


def _constraint_target(constraint) -> Any:
    try:
        return constraint.referred_table
    except SQLAlchemyError:
        return _parse_target_fullname(constraint.elements[0].target_fullname)


def describe_sqla_column(column: Column) -> RawColumn:
    return RawColumn(
        name=column.name,
        source=ColumnSource.SQLA,
        type_tag=_type_tag(column.type),
        primary_key=bool(column.primary_key),
        sql_type=column.type,
        long_text=bool(column.info.get(LONG_TEXT_MARKER, False)),
        foreign_keys=tuple(_column_fk_target(fk) for fk in column.foreign_keys),
    )


def describe_sqla_table(name: str, table: Table, handle: Any = None,
                        relations: Tuple[RawRelation, ...] = ()) -> TableDescriptor:
    foreign_keys = []
    for constraint in table.foreign_key_constraints:
        try:
            foreign_keys.append(
                RawForeignKey(
                    source_columns=tuple(constraint.column_keys),
                    target=_constraint_target(constraint),
                )
            )
        except (SQLAlchemyError, IndexError) as e:
            log.debug(f"Skipping foreign key constraint on {name}: {e}")
    columns = []
    for column in table.columns:
        try:
            columns.append(describe_sqla_column(column))
        except Exception as e:
            log.debug(f"Skipping column {name}.{column.name}: {e}")
    return TableDescriptor(
        name=name,
        storage_name=table.name,
        handle=table if handle is None else handle,
        columns=tuple(columns),
        foreign_keys=tuple(foreign_keys),
        relations=relations,
        table=table,
    )


def _model_relations(model) -> Tuple[RawRelation, ...]:
    """Many-to-one ``relationship()`` properties of a declarative model."""
    relations = []
    try:
        for prop in model.__mapper__.relationships:
            if prop.direction is not MANYTOONE:
                continue
            relations.append(
                RawRelation(
                    name=prop.key,
                    target=prop.mapper.local_table,
                    local_columns=tuple(c.name for c in prop.local_columns),
                )
            )
    except SQLAlchemyError as e:
        log.debug(f"Can't configure relationships of {model.__name__}: {e}")
    return tuple(relations)


def _is_model(handle: Any) -> bool:
    return isinstance(handle, type) and isinstance(
        getattr(handle, "__table__", None), Table
    )


def describe_mapping_column(column: Mapping) -> RawColumn:
    sql_type = column.get("type")
    references = column.get("references")
    foreign_keys = column.get("foreign_keys") or ()
    if isinstance(foreign_keys, (str, bytes)) or not isinstance(foreign_keys, Iterable):
        foreign_keys = (foreign_keys,)
    type_tag = _type_tag(sql_type)
    return RawColumn(
        name=column["name"],
        source=ColumnSource.MAPPING,
        type_tag=type_tag,
        primary_key=bool(column.get("primary_key", False)),
        sql_type=sql_type if isinstance(sql_type, TypeEngine) else None,
        long_text=bool(column.get(LONG_TEXT_MARKER, False)),
        foreign_keys=tuple(foreign_keys),
        references=references,
    )


def describe_mapping_table(name: str, metadata: Mapping) -> TableDescriptor:
    columns = metadata.get("columns")
    if not isinstance(columns, Iterable) or isinstance(columns, (str, bytes)):
        raise NotATable(name, "no column list")
    foreign_keys = []
    for fk in metadata.get("foreign_keys") or ():
        try:
            source_columns = fk.get("constrained_columns", fk.get("sourceColumns"))
            target = fk.get("referred_table", fk.get("targetTable"))
        except AttributeError:
            source_columns, target = None, None
        if not source_columns or target is None:
            log.debug(f"Skipping malformed foreign key on {name}: {fk}")
            continue
        foreign_keys.append(RawForeignKey(tuple(source_columns), target))
    described = []
    for column in columns:
        try:
            described.append(describe_mapping_column(column))
        except (KeyError, TypeError, AttributeError) as e:
            log.debug(f"Skipping malformed column on {name}: {e}")
    return TableDescriptor(
        name=name,
        storage_name=metadata.get("name", name),
        handle=metadata,
        columns=tuple(described),
        foreign_keys=tuple(foreign_keys),
    )


def describe_table(name: str, handle: Any) -> TableDescriptor:
    """
    Normalize one table handle into a :class:`TableDescriptor`.

    :param name: The declared name of the table
    :param handle: A SQLAlchemy ``Table``, a declarative model or
        an Inspector-like mapping with a ``columns`` list
    :raises NotATable: when the handle has none of these shapes
    """
    if isinstance(handle, Table):
        return describe_sqla_table(name, handle)
    if _is_model(handle):
        return describe_sqla_table(
            name, handle.__table__, handle=handle, relations=_model_relations(handle)
        )
    if isinstance(handle, Mapping) and "columns" in handle:
        return describe_mapping_table(name, handle)
    raise NotATable(name, type(handle).__name__)


def describe_relations(value: Any) -> Tuple[RawRelation, ...]:
    """Read relation hints from a relation descriptor entry."""
    if isinstance(value, Mapping):
        return tuple(RawRelation(str(key), target) for key, target in value.items())
    if isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        return tuple(item for item in value if isinstance(item, RawRelation))
    return ()


def normalize_tables(tables: Any) -> List[Tuple[str, Any]]:
    """
    Turn the accepted ``tables`` arguments into ordered (name, handle) pairs.

    Accepts a mapping of declared names to handles, a ``MetaData``
    or an iterable of tables / models.
    """
    if tables is None:
        return []
    if isinstance(tables, MetaData):
        return list(tables.tables.items())
    if isinstance(tables, Mapping):
        return list(tables.items())
    pairs = []
    for handle in tables:
        if isinstance(handle, Table):
            pairs.append((handle.name, handle))
        elif _is_model(handle):
            pairs.append((handle.__table__.name, handle))
        elif isinstance(handle, Mapping) and "name" in handle:
            pairs.append((handle["name"], handle))
        else:
            log.debug(f"Skipping unnamed table handle {handle!r}")
    return pairs


class TableRegistry:
    """
    Bijective mapping between declared table names and their handles.

    Built once; every raw reference found in metadata (a handle, a
    SQLAlchemy table or column, a model or a storage name) is turned
    back into a declared name with :meth:`name_for`.
    """

    def __init__(self, descriptors: Iterable[TableDescriptor] = (),
                 relations: Optional[Dict[str, Tuple[RawRelation, ...]]] = None):
        self._descriptors: "OrderedDict[str, TableDescriptor]" = OrderedDict()
        self._by_handle: Dict[int, str] = {}
        self._by_storage_name: Dict[str, str] = {}
        self._relations: Dict[str, Tuple[RawRelation, ...]] = dict(relations or {})
        for descriptor in descriptors:
            self.add(descriptor)

    @classmethod
    def from_tables(cls, tables: Any, relation_suffixes: Tuple[str, ...] = (),
                    exclude: Iterable[str] = ()) -> "TableRegistry":
        """
        Describe every table-like entry, collecting relation descriptors.

        Entries that fail the table check are skipped; those whose name ends
        with one of ``relation_suffixes`` are kept as relation hints for the
        table named by the prefix.
        """
        exclude = set(exclude)
        registry = cls()
        pending_relations = []
        for name, handle in normalize_tables(tables):
            if name in exclude:
                log.debug(f"Excluding table {name}")
                continue
            try:
                registry.add(describe_table(name, handle))
            except NotATable as e:
                suffix = next((s for s in relation_suffixes if name.endswith(s)), None)
                if suffix and len(name) > len(suffix):
                    pending_relations.append((name[: -len(suffix)], handle))
                else:
                    log.debug(f"Skipping {e}")
            except Exception as e:
                log.warning(f"Could not describe table {name}: {e}")
        for owner, handle in pending_relations:
            try:
                registry.add_relations(owner, describe_relations(handle))
            except Exception as e:
                log.debug(f"Ignoring relation descriptor for {owner}: {e}")
        return registry

    def add(self, descriptor: TableDescriptor):
        if descriptor.name in self._descriptors:
            log.warning(f"Table {descriptor.name} already registered, skipping")
            return
        if id(descriptor.handle) in self._by_handle:
            log.warning(
                f"Table {descriptor.name} is already registered as "
                f"{self._by_handle[id(descriptor.handle)]}, skipping"
            )
            return
        self._descriptors[descriptor.name] = descriptor
        self._by_handle[id(descriptor.handle)] = descriptor.name
        if descriptor.table is not None:
            self._by_handle.setdefault(id(descriptor.table), descriptor.name)
        self._by_storage_name.setdefault(descriptor.storage_name, descriptor.name)
        if descriptor.relations:
            self.add_relations(descriptor.name, descriptor.relations)

    def add_relations(self, owner: str, relations: Tuple[RawRelation, ...]):
        owner_name = self.name_for(owner) or owner
        self._relations[owner_name] = self._relations.get(owner_name, ()) + tuple(
            relations
        )

    def relations_for(self, name: str) -> Tuple[RawRelation, ...]:
        return self._relations.get(name, ())

    def name_for(self, reference: Any) -> Optional[str]:
        """Canonical declared name of a raw table reference, or None."""
        if reference is None:
            return None
        if isinstance(reference, str):
            if reference in self._descriptors:
                return reference
            if reference in self._by_storage_name:
                return self._by_storage_name[reference]
            bare = reference.rsplit(".", 1)[-1]
            return self._by_storage_name.get(bare) if bare != reference else None
        name = self._by_handle.get(id(reference))
        if name is not None:
            return name
        if isinstance(reference, Column) and reference.table is not None:
            return self.name_for(reference.table)
        if _is_model(reference):
            return self.name_for(reference.__table__)
        if isinstance(reference, Table):
            return self._by_storage_name.get(reference.name)
        return None

    def get(self, name: str) -> Optional[TableDescriptor]:
        return self._descriptors.get(name)

    def names(self) -> List[str]:
        return list(self._descriptors)

    def __iter__(self) -> Iterator[TableDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name: Any) -> bool:
        return name in self._descriptors
