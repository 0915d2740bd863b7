"""
Application exception hierarchy and error codes.
"""
from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Error codes for categorizing failures, with a default user message."""

    FILE_READ_ERROR = ("FILE_READ_ERROR", 1002, "Failed to read file")
    FILE_WRITE_ERROR = ("FILE_WRITE_ERROR", 1003, "Failed to write file")
    FILE_DELETE_ERROR = ("FILE_DELETE_ERROR", 1007, "Failed to delete file")

    PDF_LOAD_ERROR = ("PDF_LOAD_ERROR", 1103, "Failed to load PDF")
    PDF_SAVE_ERROR = ("PDF_SAVE_ERROR", 1104, "Failed to save PDF")
    ANNOTATION_NOT_FOUND = ("ANNOTATION_NOT_FOUND", 1110, "Annotation not found")
    ANNOTATION_SAVE_ERROR = ("ANNOTATION_SAVE_ERROR", 1111, "Failed to save annotations")

    MALFORMED_DATA = ("MALFORMED_DATA", 1204, "Malformed data")
    UNKNOWN_ANNOTATION_TYPE = ("UNKNOWN_ANNOTATION_TYPE", 1208, "Unknown annotation type")

    NETWORK_CONNECTION_ERROR = ("NETWORK_CONNECTION_ERROR", 1402, "Network connection error")
    NETWORK_REQUEST_FAILED = ("NETWORK_REQUEST_FAILED", 1403, "Network request failed")

    UNKNOWN_ERROR = ("UNKNOWN_ERROR", 1999, "Unknown error occurred")

    def __init__(self, code: str, number: int, description: str):
        self.code = code
        self.number = number
        self.description = description


class AppException(Exception):
    """Base class for all application-specific exceptions."""

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None,
                 original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.original_error = original_error

    def __str__(self) -> str:
        text = f"{type(self).__name__}: {self.message} (code: {self.code.code})"
        if self.original_error is not None:
            text += f"\nCaused by: {self.original_error!r}"
        return text


class PDFProcessingException(AppException):
    """Raised when a document or its annotations cannot be processed."""

    default_code = ErrorCode.PDF_LOAD_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None,
                 original_error: Optional[BaseException] = None,
                 file_path: Optional[str] = None,
                 operation: Optional[str] = None):
        super().__init__(message, code, original_error)
        self.file_path = file_path
        self.operation = operation

    def __str__(self) -> str:
        text = super().__str__()
        if self.file_path:
            text += f"\nFile: {self.file_path}"
        if self.operation:
            text += f"\nOperation: {self.operation}"
        return text


class AnnotationNotFound(PDFProcessingException):
    """Update or delete referenced an id that is not in the cached list."""

    default_code = ErrorCode.ANNOTATION_NOT_FOUND

    def __init__(self, annotation_id: Optional[str], pdf_path: str,
                 message: Optional[str] = None):
        super().__init__(
            message or f"Annotation not found: {annotation_id}",
            file_path=pdf_path,
        )
        self.annotation_id = annotation_id


class MalformedAnnotationData(PDFProcessingException):
    """Annotation JSON is structurally invalid."""

    default_code = ErrorCode.MALFORMED_DATA


class UnknownAnnotationType(MalformedAnnotationData):
    """The "type" discriminator names no known annotation variant."""

    default_code = ErrorCode.UNKNOWN_ANNOTATION_TYPE

    def __init__(self, type_tag: Any):
        super().__init__(f"Unknown annotation type: {type_tag!r}")
        self.type_tag = type_tag


class AnnotationSaveError(PDFProcessingException):
    """
    The mandatory local save failed.

    ``outcome`` holds the per-store results of the mutation, so callers can
    tell whether the remote write had already landed.
    """

    default_code = ErrorCode.ANNOTATION_SAVE_ERROR

    def __init__(self, message: str, outcome: Any = None,
                 original_error: Optional[BaseException] = None,
                 file_path: Optional[str] = None,
                 operation: Optional[str] = None):
        super().__init__(message, original_error=original_error,
                         file_path=file_path, operation=operation)
        self.outcome = outcome


class FileOperationException(AppException):
    """Raised when a file system operation fails."""

    default_code = ErrorCode.FILE_WRITE_ERROR

    def __init__(self, message: str, operation: str,
                 code: Optional[ErrorCode] = None,
                 original_error: Optional[BaseException] = None,
                 file_path: Optional[str] = None):
        super().__init__(message, code, original_error)
        self.operation = operation
        self.file_path = file_path

    def __str__(self) -> str:
        text = super().__str__()
        if self.file_path:
            text += f"\nFile: {self.file_path}"
        return text + f"\nOperation: {self.operation}"


class LocalPersistenceError(FileOperationException):
    """Disk I/O failure in the local annotation store."""


class NetworkException(AppException):
    """Raised when a call to the hosted backend fails."""

    default_code = ErrorCode.NETWORK_REQUEST_FAILED

    def __init__(self, message: str, code: Optional[ErrorCode] = None,
                 original_error: Optional[BaseException] = None,
                 url: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, code, original_error)
        self.url = url
        self.status_code = status_code


class RemotePersistenceError(NetworkException):
    """Network or backend failure in the remote annotation store."""


def user_message(error: BaseException) -> str:
    """Return text suitable for showing to the user for ``error``."""
    if isinstance(error, AppException):
        return error.code.description
    return ErrorCode.UNKNOWN_ERROR.description
