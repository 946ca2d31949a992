from .classify import classify_column  # noqa: F401
from .descriptors import (  # noqa: F401
    ColumnSource,
    RawColumn,
    RawForeignKey,
    RawRelation,
    TableDescriptor,
    TableRegistry,
    describe_table,
)
from .introspector import introspect, SchemaIntrospector  # noqa: F401
from .resolvers import (  # noqa: F401
    DEFAULT_RESOLVERS,
    ResolverContext,
    resolve_foreign_key,
)
