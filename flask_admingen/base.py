import logging
from typing import Any, Iterable, NamedTuple, Optional, Sequence

from sqlalchemy.engine import Engine

from . import const
from .handlers import HandlerFactory, HandlerMap
from .introspection.descriptors import TableRegistry
from .introspection.introspector import SchemaIntrospector
from .models.sqla.interface import SQLAStorage
from .schema import ResourceSchema

log = logging.getLogger(__name__)


class AdapterResult(NamedTuple):
    schema: ResourceSchema
    handlers: HandlerMap
    registry: TableRegistry


def create_adapter(
    tables: Any = None,
    engine: Optional[Engine] = None,
    config: Any = None,
    expand_relations: bool = False,
    id_suffixes: Sequence[str] = const.DEFAULT_ID_SUFFIXES,
    relation_suffixes: Sequence[str] = const.DEFAULT_RELATION_SUFFIXES,
    exclude_tables: Iterable[str] = (),
    storage: Any = None,
) -> AdapterResult:
    """
    Introspect the data model and build the CRUD handlers over it.

    :param tables: Table metadata, a mapping of names to tables or models,
        a ``MetaData`` or an iterable of tables / models
    :param engine: The SQLAlchemy engine used by the default storage
    :param config: Explicit resource configuration, disables inference
    :param expand_relations: Expand related records on reads
    :param id_suffixes: Foreign key column suffixes for the naming fallback
    :param relation_suffixes: Suffixes marking relation descriptor entries
    :param exclude_tables: Declared table names left out of the schema
    :param storage: A storage accessor to use instead of :class:`SQLAStorage`
    """
    introspector = SchemaIntrospector(
        id_suffixes=id_suffixes,
        relation_suffixes=relation_suffixes,
        exclude_tables=exclude_tables,
    )
    schema, registry = introspector.introspect(tables, config=config)
    if storage is None:
        if engine is None:
            raise ValueError("An engine or a storage accessor is required")
        storage = SQLAStorage(engine, registry)
    handlers = HandlerFactory(schema, storage, expand_relations=expand_relations).build()
    return AdapterResult(schema, handlers, registry)


class AdminGen(object):
    """
    Flask extension publishing the resource schema and handlers.

    Reads its options from ``app.config`` and introspects the tables of
    a Flask-SQLAlchemy ``db``, unless explicit tables are given::

        db = SQLAlchemy(app)
        admin = AdminGen(app, db)
        admin.handlers["posts"].list()

    The extension registers no routes, the result is stored on
    ``app.extensions["admingen"]`` for the routing layer to consume.
    """

    def __init__(self, app=None, db=None, tables: Any = None):
        self.db = db
        self.tables = tables
        self.result: Optional[AdapterResult] = None
        if app is not None:
            self.init_app(app, db)

    def init_app(self, app, db=None):
        db = db or self.db
        if db is None:
            raise ValueError("AdminGen needs a Flask-SQLAlchemy instance")
        app.config.setdefault(const.CONFIG_RESOURCES, None)
        app.config.setdefault(const.CONFIG_EXPAND_RELATIONS, False)
        app.config.setdefault(const.CONFIG_ID_SUFFIXES, list(const.DEFAULT_ID_SUFFIXES))
        app.config.setdefault(
            const.CONFIG_RELATION_SUFFIXES, list(const.DEFAULT_RELATION_SUFFIXES)
        )
        app.config.setdefault(const.CONFIG_EXCLUDE_TABLES, [])

        with app.app_context():
            self.result = create_adapter(
                tables=self.tables if self.tables is not None else db.metadata,
                engine=db.engine,
                config=app.config[const.CONFIG_RESOURCES],
                expand_relations=app.config[const.CONFIG_EXPAND_RELATIONS],
                id_suffixes=app.config[const.CONFIG_ID_SUFFIXES],
                relation_suffixes=app.config[const.CONFIG_RELATION_SUFFIXES],
                exclude_tables=app.config[const.CONFIG_EXCLUDE_TABLES],
            )
        app.extensions[const.EXTENSION_KEY] = self
        log.info(f"AdminGen initialized with resources: {list(self.schema.names)}")

    @property
    def schema(self) -> ResourceSchema:
        return self._get_result().schema

    @property
    def handlers(self) -> HandlerMap:
        return self._get_result().handlers

    def _get_result(self) -> AdapterResult:
        if self.result is None:
            raise RuntimeError("AdminGen is not initialized, call init_app first")
        return self.result
