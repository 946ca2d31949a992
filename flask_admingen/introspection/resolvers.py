"""
Foreign key resolution

Each resolver inspects one column and returns the declared name of the
referenced table, or None. :func:`resolve_foreign_key` tries them in order,
the first match wins and a resolver that raises counts as no match.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import inflect

from ..const import DEFAULT_ID_SUFFIXES
from .descriptors import RawColumn, TableDescriptor, TableRegistry

log = logging.getLogger(__name__)
p = inflect.engine()


@dataclass(frozen=True)
class ResolverContext:
    registry: TableRegistry
    id_suffixes: Tuple[str, ...] = DEFAULT_ID_SUFFIXES


Resolver = Callable[[RawColumn, TableDescriptor, ResolverContext], Optional[str]]


def strip_id_suffix(name: str, suffixes: Sequence[str]) -> Optional[str]:
    """``author_id`` -> ``author``, None when no suffix applies."""
    for suffix in suffixes:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return None


def from_table_foreign_keys(column, table, ctx) -> Optional[str]:
    """Table level foreign key descriptors (column list -> referenced table)."""
    for foreign_key in table.foreign_keys:
        if column.name in foreign_key.source_columns:
            name = ctx.registry.name_for(foreign_key.target)
            if name:
                return name
    return None


def from_column_foreign_keys(column, table, ctx) -> Optional[str]:
    """Foreign key descriptors declared on the column itself."""
    for target in column.foreign_keys:
        name = ctx.registry.name_for(target)
        if name:
            return name
    return None


def from_column_references(column, table, ctx) -> Optional[str]:
    """A column level ``references`` accessor, possibly a callable."""
    if column.references is None:
        return None
    target = column.references() if callable(column.references) else column.references
    return ctx.registry.name_for(target)


def from_relation_descriptors(column, table, ctx) -> Optional[str]:
    """Relation hints found next to the table, matched by relation name."""
    base = strip_id_suffix(column.name, ctx.id_suffixes)
    for relation in ctx.registry.relations_for(table.name):
        if column.name in relation.local_columns or relation.name in (column.name, base):
            name = ctx.registry.name_for(relation.target)
            if name:
                return name
    return None


def from_naming_convention(column, table, ctx) -> Optional[str]:
    """
    ``<base><id suffix>`` columns matched against declared table names.

    A table matches when its name equals the base, its plural, or contains
    the base. Ties go to the first table in declaration order, so with
    ``superusers`` declared before ``users`` a ``user_id`` column resolves
    to ``superusers``. This heuristic is known to be imprecise.
    """
    if column.primary_key:
        return None
    base = strip_id_suffix(column.name, ctx.id_suffixes)
    if not base:
        return None
    base = base.lower()
    plural = p.plural_noun(base) or base
    for name in ctx.registry.names():
        candidate = name.lower()
        if candidate == base or candidate == plural or base in candidate:
            return name
    return None


DEFAULT_RESOLVERS: Tuple[Resolver, ...] = (
    from_table_foreign_keys,
    from_column_foreign_keys,
    from_column_references,
    from_relation_descriptors,
    from_naming_convention,
)


def resolve_foreign_key(
    column: RawColumn,
    table: TableDescriptor,
    ctx: ResolverContext,
    resolvers: Sequence[Resolver] = DEFAULT_RESOLVERS,
) -> Optional[str]:
    """
    Resolve the resource referenced by a column.

    :param column: The column being inspected
    :param table: The descriptor of the table owning the column
    :param ctx: Registry and naming options shared by all resolvers
    :param resolvers: Ordered resolvers, the first non empty answer wins
    :return: The declared name of the referenced table or None
    """
    for resolver in resolvers:
        try:
            match = resolver(column, table, ctx)
        except Exception as e:
            log.debug(
                f"Resolver {resolver.__name__} failed on {table.name}.{column.name}: {e}"
            )
            continue
        if match:
            log.debug(
                f"Resolved {table.name}.{column.name} -> {match} ({resolver.__name__})"
            )
            return match
    return None
