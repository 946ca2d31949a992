class AdminGenException(Exception):
    """Base AdminGen exception"""


class IntrospectionError(AdminGenException):
    """Metadata could not be turned into schema information.

    Raised and recovered inside the introspector, a table or column that
    raises one of these is skipped.
    """


class NotATable(IntrospectionError):
    """An entry of the table mapping is not a table"""

    def __init__(self, name, reason=""):
        self.name = name
        self.reason = reason
        super().__init__(f"{name} is not a table{': ' + reason if reason else ''}")


class ClassificationSkipped(IntrospectionError):
    """A column has a storage type with no UI field kind"""

    def __init__(self, column, type_tag):
        self.column = column
        self.type_tag = type_tag
        super().__init__(f"Column {column} of type {type_tag} is not classifiable")


class InvalidResourceConfig(AdminGenException):
    """Explicit resource configuration failed validation"""

    def __init__(self, messages):
        self.messages = messages
        super().__init__(f"Invalid resource configuration: {messages}")


class UnknownResource(AdminGenException, LookupError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown resource: {name}")


class MissingPrimaryKey(AdminGenException):
    def __init__(self, resource):
        self.resource = resource
        super().__init__(f"No primary key found for resource: {resource}")


class NotFound(AdminGenException):
    def __init__(self, resource, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"No {resource} record found with id {identifier!r}")


class StorageError(AdminGenException):
    """
    A storage level failure, wraps the native error with resource context.
    The wrapped exception is available as ``cause`` and ``__cause__``.
    """

    operation = "query"

    def __init__(self, resource, cause):
        self.resource = resource
        self.cause = cause
        super().__init__(f"{self.operation.capitalize()} on {resource} failed: {cause}")


class InsertFailed(StorageError):
    operation = "insert"


class UpdateFailed(StorageError):
    operation = "update"


class DeleteFailed(StorageError):
    operation = "delete"


class QueryFailed(StorageError):
    operation = "query"
