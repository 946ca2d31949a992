__author__ = "AdminGen contributors"
__version__ = "0.3.0"

from .base import AdapterResult, AdminGen, create_adapter  # noqa: F401
from .exceptions import (  # noqa: F401
    AdminGenException,
    DeleteFailed,
    InsertFailed,
    InvalidResourceConfig,
    MissingPrimaryKey,
    NotFound,
    QueryFailed,
    StorageError,
    UnknownResource,
    UpdateFailed,
)
from .handlers import HandlerFactory, HandlerMap, ResourceHandlers  # noqa: F401
from .introspection import introspect, SchemaIntrospector, TableRegistry  # noqa: F401
from .models.sqla import SQLAStorage  # noqa: F401
from .schema import (  # noqa: F401
    Field,
    FieldKind,
    RelationCardinality,
    Resource,
    ResourceSchema,
)
