"""
Schema Introspector

Turns table metadata (automatic mode) or explicit resource configuration
(config-driven mode) into a :class:`ResourceSchema`.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from marshmallow import ValidationError

from .. import const
from ..exceptions import ClassificationSkipped, InvalidResourceConfig
from ..schema import Field, Resource, ResourceSchema, title_case
from .classify import classify_column
from .config import AdminConfigSchema
from .descriptors import RawColumn, TableDescriptor, TableRegistry, describe_table
from .resolvers import (
    DEFAULT_RESOLVERS,
    Resolver,
    ResolverContext,
    resolve_foreign_key,
)

log = logging.getLogger(__name__)


class SchemaIntrospector:
    """
    Builds the resource schema once, at startup.

    In automatic mode every table of the registry becomes a resource,
    columns are classified and foreign keys are inferred with a cascade
    of resolvers. In config-driven mode the explicit configuration is
    validated and copied, no inference is performed.

    Introspection never fails on a single table or column: whatever
    can't be understood is logged and skipped.
    """

    def __init__(
        self,
        id_suffixes: Sequence[str] = const.DEFAULT_ID_SUFFIXES,
        relation_suffixes: Sequence[str] = const.DEFAULT_RELATION_SUFFIXES,
        exclude_tables: Iterable[str] = (),
        resolvers: Sequence[Resolver] = DEFAULT_RESOLVERS,
    ):
        self.id_suffixes = tuple(id_suffixes)
        self.relation_suffixes = tuple(relation_suffixes)
        self.exclude_tables = tuple(exclude_tables)
        self.resolvers = tuple(resolvers)

    def introspect(
        self, tables: Any = None, config: Any = None
    ) -> Tuple[ResourceSchema, TableRegistry]:
        """
        Build the schema and the table registry used by storage.

        :param tables: Table metadata, see :func:`normalize_tables`
        :param config: Optional explicit resource configuration, takes
            precedence over ``tables`` when given
        """
        if config:
            return self.from_config(config)
        registry = self.build_registry(tables)
        return self.from_registry(registry), registry

    def build_registry(self, tables: Any) -> TableRegistry:
        return TableRegistry.from_tables(
            tables,
            relation_suffixes=self.relation_suffixes,
            exclude=self.exclude_tables,
        )

    # -----------------------------------------------------------------
    # Automatic mode
    # -----------------------------------------------------------------
    def from_registry(self, registry: TableRegistry) -> ResourceSchema:
        ctx = ResolverContext(registry=registry, id_suffixes=self.id_suffixes)
        candidates: Dict[str, List[Tuple[RawColumn, Field]]] = {}
        for descriptor in registry:
            try:
                candidates[descriptor.name] = self._build_fields(descriptor, ctx)
            except Exception as e:
                log.warning(f"Skipping table {descriptor.name}: {e}")
        surviving = self._drop_dangling_relations(candidates)
        resources = []
        for name, entries in candidates.items():
            if name not in surviving:
                log.debug(f"Table {name} has no classifiable columns, skipped")
                continue
            resources.append(
                Resource(name=name, label=title_case(name), fields=[f for _, f in entries])
            )
        schema = ResourceSchema(resources)
        log.info(const.LOGMSG_INF_SCHEMA_BUILT, len(schema), ", ".join(schema.names))
        return schema

    def _build_fields(
        self, descriptor: TableDescriptor, ctx: ResolverContext
    ) -> List[Tuple[RawColumn, Field]]:
        entries = []
        primary_key = None
        for column in descriptor.columns:
            is_primary_key = column.primary_key and primary_key is None
            try:
                field = self.build_field(column, descriptor, ctx, is_primary_key)
            except ClassificationSkipped as e:
                log.debug(f"Dropping {descriptor.name}.{column.name}: {e}")
                continue
            except Exception as e:
                log.warning(f"Dropping {descriptor.name}.{column.name}: {e}")
                continue
            if is_primary_key:
                primary_key = column.name
            elif column.primary_key:
                log.warning(const.LOGMSG_WAR_COMPOSITE_KEY, descriptor.name, primary_key)
            entries.append((column, field))
        if entries and primary_key is None:
            log.warning(const.LOGMSG_WAR_NO_PRIMARY_KEY, descriptor.name)
        return entries

    def build_field(
        self,
        column: RawColumn,
        descriptor: TableDescriptor,
        ctx: ResolverContext,
        is_primary_key: bool = False,
    ) -> Field:
        """
        Build the field of one column, relation first then scalar.

        :raises ClassificationSkipped: for an unresolved column whose
            storage type has no field kind
        """
        related = resolve_foreign_key(column, descriptor, ctx, self.resolvers)
        if related:
            return Field.relation(
                name=column.name,
                related_resource=related,
                foreign_key_column=column.name,
                is_primary_key=is_primary_key,
            )
        return Field(
            name=column.name,
            kind=classify_column(column),
            is_primary_key=is_primary_key,
        )

    def _drop_dangling_relations(
        self, candidates: Dict[str, List[Tuple[RawColumn, Field]]]
    ) -> set:
        """
        Degrade relations targeting tables excluded from the schema.

        Runs until stable, since degrading a relation to an unclassifiable
        column can empty another table.
        """
        while True:
            surviving = {name for name, entries in candidates.items() if entries}
            changed = False
            for name, entries in candidates.items():
                for index, (column, field) in enumerate(list(entries)):
                    if not field.is_relation or field.related_resource in surviving:
                        continue
                    log.warning(
                        const.LOGMSG_WAR_DANGLING_RELATION,
                        name,
                        field.name,
                        field.related_resource,
                    )
                    changed = True
                    try:
                        entries[index] = (
                            column,
                            Field(
                                name=column.name,
                                kind=classify_column(column),
                                is_primary_key=field.is_primary_key,
                            ),
                        )
                    except ClassificationSkipped:
                        entries[index] = None
                candidates[name] = [entry for entry in entries if entry is not None]
            if not changed:
                return surviving

    # -----------------------------------------------------------------
    # Config-driven mode
    # -----------------------------------------------------------------
    def from_config(self, config: Any) -> Tuple[ResourceSchema, TableRegistry]:
        """
        Validate explicit configuration and copy it into a schema.

        :raises InvalidResourceConfig: when the configuration is malformed
        """
        try:
            data = AdminConfigSchema().load(config)
        except ValidationError as e:
            raise InvalidResourceConfig(e.messages) from e
        registry = TableRegistry()
        resources = []
        for item in data["resources"]:
            slug = item["slug"]
            try:
                descriptor = describe_table(slug, item["table"])
            except Exception as e:
                raise InvalidResourceConfig({slug: [str(e)]}) from e
            self._check_storage_columns(descriptor, item["field_list"])
            registry.add(descriptor)
            if slug not in registry:
                raise InvalidResourceConfig(
                    {slug: ["Table is already configured for another resource"]}
                )
            resource = Resource(
                name=slug, label=item["label"], fields=item["field_list"]
            )
            if resource.primary_key is None:
                log.warning(const.LOGMSG_WAR_NO_PRIMARY_KEY, slug)
            resources.append(resource)
        schema = ResourceSchema(resources)
        log.info(const.LOGMSG_INF_SCHEMA_BUILT, len(schema), ", ".join(schema.names))
        return schema, registry

    @staticmethod
    def _check_storage_columns(descriptor: TableDescriptor, fields: List[Field]):
        if descriptor.table is None:
            return
        missing = [
            f.storage_column
            for f in fields
            if descriptor.get_column(f.storage_column) is None
        ]
        if missing:
            raise InvalidResourceConfig(
                {descriptor.name: [f"Unknown storage columns: {missing}"]}
            )


def introspect(tables: Any = None, config: Optional[Any] = None, **kwargs) -> ResourceSchema:
    """Shortcut returning only the schema."""
    schema, _ = SchemaIntrospector(**kwargs).introspect(tables, config)
    return schema
