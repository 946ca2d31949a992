# Field kinds exposed to the UI
KIND_TEXT = "text"
KIND_LONG_TEXT = "long_text"
KIND_NUMBER = "number"
KIND_BOOLEAN = "boolean"
KIND_DATE = "date"
KIND_RELATION = "relation"

CARDINALITY_MANY_TO_ONE = "manyToOne"

# Naming conventions used by automatic introspection
DEFAULT_ID_SUFFIXES = ("_id", "Id")
DEFAULT_RELATION_SUFFIXES = ("_relations", "Relations")

# Column.info / mapping key marking long form text storage
LONG_TEXT_MARKER = "long_text"

# Handler operation names
OPERATION_LIST = "list"
OPERATION_GET = "get_by_id"
OPERATION_CREATE = "create"
OPERATION_UPDATE = "update"
OPERATION_DELETE = "delete"
OPERATIONS = (
    OPERATION_LIST,
    OPERATION_GET,
    OPERATION_CREATE,
    OPERATION_UPDATE,
    OPERATION_DELETE,
)

EXTENSION_KEY = "admingen"

# Flask config keys
CONFIG_RESOURCES = "ADMINGEN_RESOURCES"
CONFIG_EXPAND_RELATIONS = "ADMINGEN_EXPAND_RELATIONS"
CONFIG_ID_SUFFIXES = "ADMINGEN_ID_SUFFIXES"
CONFIG_RELATION_SUFFIXES = "ADMINGEN_RELATION_SUFFIXES"
CONFIG_EXCLUDE_TABLES = "ADMINGEN_EXCLUDE_TABLES"

LOGMSG_ERR_DBI_ADD_GENERIC = "Add record error on %s: %s"
LOGMSG_ERR_DBI_EDIT_GENERIC = "Edit record error on %s: %s"
LOGMSG_ERR_DBI_DEL_GENERIC = "Delete record error on %s: %s"
LOGMSG_ERR_DBI_QUERY_GENERIC = "Query error on %s: %s"
LOGMSG_WAR_NO_PRIMARY_KEY = "Resource %s has no primary key, id operations disabled"
LOGMSG_WAR_COMPOSITE_KEY = "Resource %s has a composite primary key, using %s"
LOGMSG_WAR_DANGLING_RELATION = (
    "Relation %s.%s targets %s which is not in the schema, kept as scalar"
)
LOGMSG_INF_SCHEMA_BUILT = "Resource schema built with %s resources: %s"
