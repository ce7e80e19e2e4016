"""Error kinds surfaced to clients (and to the job pipeline).

Each error carries a stable ``kind`` and an HTTP status class. Messages are
user-facing and never include ids, paths or stack detail.
"""

from typing import Optional


class FileboxError(Exception):
    """Base class for all expected failures."""

    status_code = 500
    kind = "InternalError"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, kind: Optional[str] = None) -> None:
        self.message = message or self.default_message
        if kind:
            self.kind = kind
        super().__init__(self.message)


class Unauthorized(FileboxError):
    """Missing, invalid or expired token, or bad credentials."""

    status_code = 401
    kind = "Unauthorized"
    default_message = "Unauthorized"


class ValidationError(FileboxError):
    """Missing or invalid input. Raised before any write."""

    status_code = 400
    kind = "ValidationError"
    default_message = "Invalid request"


class NotFound(FileboxError):
    """Entry absent or not visible to the caller."""

    status_code = 404
    kind = "NotFound"
    default_message = "Not found"


class UnsupportedOperation(FileboxError):
    """Operation that does not apply to this kind of entry."""

    status_code = 400
    kind = "UnsupportedOperation"
    default_message = "Unsupported operation"


class JobFailure(FileboxError):
    """Pipeline failure; terminal for one job, never returned to a request."""

    kind = "JobFailure"
    default_message = "Job failed"


def missing_name() -> ValidationError:
    return ValidationError("Missing name", kind="MissingName")


def missing_type() -> ValidationError:
    return ValidationError("Missing type", kind="MissingType")


def missing_data() -> ValidationError:
    return ValidationError("Missing data", kind="MissingData")


def invalid_data() -> ValidationError:
    return ValidationError("Data is not valid base64", kind="InvalidData")


def parent_not_found() -> ValidationError:
    return ValidationError("Parent not found", kind="ParentNotFound")


def parent_not_folder() -> ValidationError:
    return ValidationError("Parent is not a folder", kind="ParentNotFolder")


def missing_email() -> ValidationError:
    return ValidationError("Missing email", kind="MissingEmail")


def missing_password() -> ValidationError:
    return ValidationError("Missing password", kind="MissingPassword")


def duplicate_email() -> ValidationError:
    return ValidationError("Already exist", kind="DuplicateEmail")


def folder_has_no_content() -> UnsupportedOperation:
    return UnsupportedOperation("A folder doesn't have content", kind="FolderHasNoContent")
