from typing import List, Optional, Sequence

from .schemas import FailureKind


class ContactImportError(Exception):
    """Base class for import failures."""


class MissingColumnsError(ContactImportError):
    """Header row lacks one or more required columns; nothing is imported."""

    def __init__(self, missing: List[str], headers: Sequence[str] = ()):
        self.missing = list(missing)
        self.headers = list(headers)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class SourceReadError(ContactImportError):
    """Input stream could not be read or parsed as delimited text."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)


class ValidationError(ContactImportError):
    """A single row was rejected."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class BatchWriteError(ContactImportError):
    """A batch could not be persisted."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.FATAL):
        self.kind = kind
        super().__init__(message)
