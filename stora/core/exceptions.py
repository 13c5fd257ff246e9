
class StoraError(Exception):
    """Base class for every failure a ledger operation reports to its caller."""

    kind = "error"

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self):
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(StoraError):
    kind = "validation_error"

    def __init__(self, message=None, fields=None, **details):
        self.fields = list(fields or [])
        if self.fields:
            details.setdefault("fields", self.fields)
        super().__init__(message or f"Invalid field(s): {', '.join(self.fields)}", **details)


class DuplicateCode(StoraError):
    kind = "duplicate_code"

    def __init__(self, code, existing_id=None):
        self.code = code
        self.existing_id = existing_id
        super().__init__(
            f"Asset code '{code}' is already registered.",
            code=code, existing_id=existing_id)


class InsufficientAvailability(StoraError):
    kind = "insufficient_availability"

    def __init__(self, shortfalls):
        self.shortfalls = shortfalls
        super().__init__(
            "Requested quantity exceeds availability.", lines=shortfalls)


class NotFound(StoraError):
    kind = "not_found"


class StorageFailure(StoraError):
    kind = "storage_failure"


class BlobStoreError(StoraError):
    kind = "blob_store_error"


class PhotoTooLargeError(ValidationError): pass

class InvalidPhotoError(ValidationError): pass

class AuthenticationError(StoraError):
    kind = "unauthenticated"
