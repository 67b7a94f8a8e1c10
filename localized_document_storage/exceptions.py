"""
Custom exceptions for localized document storage.

All components and storage backends raise these exceptions
for consistent error handling across the write, read and query paths.
"""


class LocalizationStorageError(Exception):
    """Base exception for all localized document storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidLocaleError(LocalizationStorageError):
    """Raised when a requested or target locale is not registered."""

    def __init__(self, locale: str, registered: tuple[str, ...] | None = None):
        details: dict = {"locale": locale}
        if registered:
            details["registered"] = list(registered)
        super().__init__(f"Invalid locale: {locale!r}", details)
        self.locale = locale


class SchemaError(LocalizationStorageError):
    """Raised when a collection or field declaration is inconsistent."""

    def __init__(self, reason: str, slug: str | None = None):
        details = {"reason": reason}
        if slug:
            details["slug"] = slug
        super().__init__(f"Invalid schema: {reason}", details)
        self.reason = reason
        self.slug = slug


class CollectionNotFoundError(LocalizationStorageError):
    """Raised when a collection or global slug is not declared."""

    def __init__(self, slug: str):
        super().__init__(f"Collection not found: {slug}", {"slug": slug})
        self.slug = slug


class DocumentNotFoundError(LocalizationStorageError):
    """Raised when a document is not found."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            f"Document not found: {collection}/{document_id}",
            {"collection": collection, "id": document_id},
        )
        self.collection = collection
        self.document_id = document_id


class DocumentExistsError(LocalizationStorageError):
    """Raised when trying to insert a document whose id is already taken."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            f"Document already exists: {collection}/{document_id}",
            {"collection": collection, "id": document_id},
        )
        self.collection = collection
        self.document_id = document_id


class ValidationError(LocalizationStorageError):
    """Raised when data validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class RequiredFieldMissingError(ValidationError):
    """Raised when a required field has no value for the targeted locale."""

    def __init__(self, field: str, locale: str):
        super().__init__(field, f"required field has no value for locale {locale!r}")
        self.details["locale"] = locale
        self.locale = locale


class QueryValidationError(LocalizationStorageError):
    """Base exception for filters rejected before storage is touched."""


class InvalidFieldPathError(QueryValidationError):
    """Raised when a query or sort path cannot be resolved against the schema."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Invalid field path {path!r}: {reason}",
            {"path": path, "reason": reason},
        )
        self.path = path
        self.reason = reason


class InvalidOperatorError(QueryValidationError):
    """Raised when a where clause uses an unknown operator."""

    def __init__(self, operator: str, path: str | None = None):
        details = {"operator": operator}
        if path:
            details["path"] = path
        super().__init__(f"Invalid query operator: {operator!r}", details)
        self.operator = operator
        self.path = path


class StorageIOError(LocalizationStorageError):
    """Raised when a storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(LocalizationStorageError):
    """Raised when connection to the storage backend fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
