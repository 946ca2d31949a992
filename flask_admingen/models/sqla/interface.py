import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import MetaData, and_, delete, insert, select, types, update
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.sql.schema import Table

from ...exceptions import UnknownResource
from ...introspection.descriptors import TableRegistry

log = logging.getLogger(__name__)


class SQLAStorage(object):
    """
    Storage accessor over a SQLAlchemy engine.

    Queries are addressed by resource name, the registry maps each name
    back to its table. Every call runs in its own transaction, so isolation
    and consistency are those of the database.
    SQLAlchemy errors are not caught here, handlers wrap them with
    resource context.

    ::

        storage = SQLAStorage(engine, registry)
        storage.insert("posts", {"title": "Hi"})
    """

    supports_joins = True

    def __init__(self, engine: Engine, registry: TableRegistry):
        self.engine = engine
        self.registry = registry
        self._reflected: Dict[str, Table] = {}
        self._metadata = MetaData()

    def get_table(self, resource: str) -> Table:
        """
        The table of a resource. Resources described from plain mapping
        metadata are reflected from the database by storage name.

        :raises UnknownResource: when the name is not registered
        :raises sqlalchemy.exc.NoSuchTableError: when reflection finds no table
        """
        descriptor = self.registry.get(resource)
        if descriptor is None:
            raise UnknownResource(resource)
        if descriptor.table is not None:
            return descriptor.table
        if resource not in self._reflected:
            log.debug(f"Reflecting table {descriptor.storage_name} for {resource}")
            self._reflected[resource] = Table(
                descriptor.storage_name, self._metadata, autoload_with=self.engine
            )
        return self._reflected[resource]

    def find_many(self, resource: str) -> List[Dict[str, Any]]:
        table = self.get_table(resource)
        with self.engine.connect() as conn:
            return [self._as_record(row) for row in conn.execute(select(table))]

    def find_first(self, resource: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        table = self.get_table(resource)
        with self.engine.connect() as conn:
            row = self._select_one(conn, table, table.c[column] == value)
        return self._as_record(row) if row is not None else None

    def find_in(self, resource: str, column: str, values: Iterable[Any]) -> List[Dict[str, Any]]:
        values = list(values)
        if not values:
            return []
        table = self.get_table(resource)
        with self.engine.connect() as conn:
            rows = conn.execute(select(table).where(table.c[column].in_(values)))
            return [self._as_record(row) for row in rows]

    def insert(self, resource: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a row and return it as stored, generated values included.
        """
        table = self.get_table(resource)
        values = self._adapt_values(table, values)
        stmt = insert(table)
        if values:
            stmt = stmt.values(**values)
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
            primary_key = result.inserted_primary_key
            pk_columns = list(table.primary_key.columns)
            if not pk_columns or primary_key is None or None in tuple(primary_key):
                return self._serialize(values)
            row = self._select_one(
                conn,
                table,
                and_(*[c == v for c, v in zip(pk_columns, primary_key)]),
            )
        return self._as_record(row) if row is not None else self._serialize(values)

    def update(
        self, resource: str, column: str, value: Any, values: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Update the row where ``column == value``, return it or None
        when no row matches. Never inserts.
        """
        table = self.get_table(resource)
        values = self._adapt_values(table, values)
        criterion = table.c[column] == value
        with self.engine.begin() as conn:
            if self._select_one(conn, table, criterion) is None:
                return None
            if values:
                conn.execute(update(table).where(criterion).values(**values))
            row = self._select_one(
                conn, table, table.c[column] == values.get(column, value)
            )
        return self._as_record(row) if row is not None else None

    def delete(self, resource: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        """Delete the row where ``column == value``, return it or None."""
        table = self.get_table(resource)
        criterion = table.c[column] == value
        with self.engine.begin() as conn:
            row = self._select_one(conn, table, criterion)
            if row is None:
                return None
            conn.execute(delete(table).where(criterion))
        return self._as_record(row)

    @staticmethod
    def _select_one(conn: Connection, table: Table, criterion) -> Optional[Row]:
        return conn.execute(select(table).where(criterion).limit(1)).first()

    @staticmethod
    def _adapt_values(table: Table, values: Dict[str, Any]) -> Dict[str, Any]:
        adapted = {}
        for key, value in values.items():
            column = table.c.get(key)
            if (
                column is not None
                and isinstance(value, datetime.datetime)
                and isinstance(column.type, types.Date)
            ):
                value = value.date()
            adapted[key] = value
        return adapted

    @classmethod
    def _as_record(cls, row: Row) -> Dict[str, Any]:
        return cls._serialize(row._mapping)

    @staticmethod
    def _serialize(values) -> Dict[str, Any]:
        result = dict()
        for key, value in values.items():
            if isinstance(value, (datetime.datetime, datetime.date)):
                value = value.isoformat()
            result[key] = value
        return result
