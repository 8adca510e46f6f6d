# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Error taxonomy for SMB FieldMap.

Every failure that can be reported back to the caller of the upload
pipeline is represented by a subclass of ``FieldMapError``. Each error
carries:

- a machine-readable ``code`` (see ``ErrorCode``),
- a human-readable ``message``,
- an HTTP-style ``status`` (400 for input problems, 500 for bugs).

Validation errors (everything except ``INTERNAL_ERROR``) are raised where
they are detected and converted into structured responses by
``pipeline.handle_upload``. They are never retried: the user has to fix
the uploaded file.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in failure responses."""

    MISSING_INPUT = "MISSING_INPUT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    EMPTY_INPUT = "EMPTY_INPUT"
    MISSING_REQUIRED_FIELDS = "MISSING_REQUIRED_FIELDS"
    INVALID_RECORD = "INVALID_RECORD"
    UNREADABLE_FILE = "UNREADABLE_FILE"
    INVALID_CATEGORY = "INVALID_CATEGORY"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class FieldMapError(Exception):
    """Base class for all errors surfaced by the upload pipeline."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Return the failure payload for this error."""
        return {
            "success": False,
            "code": self.code.value,
            "message": self.message,
        }


class ValidationError(FieldMapError):
    """Base class for errors caused by the uploaded input itself."""

    status = 400


class MissingInputError(ValidationError):
    """The request lacks the file payload or the organization id."""

    code = ErrorCode.MISSING_INPUT


class FileTooLargeError(ValidationError):
    """The payload exceeds the configured size ceiling."""

    code = ErrorCode.FILE_TOO_LARGE

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"File too large: {size} bytes (maximum allowed is {limit} bytes)."
        )
        self.size = size
        self.limit = limit


class EmptyInputError(ValidationError):
    """The parser found no non-blank line in the payload."""

    code = ErrorCode.EMPTY_INPUT

    def __init__(self, message: str = "The uploaded file contains no data."):
        super().__init__(message)


class MissingRequiredFieldsError(ValidationError):
    """One or more required canonical fields could not be mapped."""

    code = ErrorCode.MISSING_REQUIRED_FIELDS

    def __init__(self, missing_fields: list[str]):
        fields = ", ".join(missing_fields)
        super().__init__(f"Required fields could not be mapped: {fields}")
        self.missing_fields = list(missing_fields)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["missing_fields"] = list(self.missing_fields)
        return payload


class InvalidRecordError(ValidationError):
    """Headers resolved, but the data did not yield a usable record."""

    code = ErrorCode.INVALID_RECORD


class UnreadableFileError(ValidationError):
    """The payload has a workbook signature but is not a readable workbook."""

    code = ErrorCode.UNREADABLE_FILE


class InvalidCategoryError(ValidationError):
    """The requested record category is not one the dictionary knows."""

    code = ErrorCode.INVALID_CATEGORY


class InternalError(FieldMapError):
    """Unexpected failure; the message never exposes internals."""

    code = ErrorCode.INTERNAL_ERROR
    status = 500

    def __init__(self, request_id: str):
        super().__init__(
            "An unexpected error occurred while processing the file "
            f"(request id: {request_id})."
        )
        self.request_id = request_id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["request_id"] = self.request_id
        return payload
