"""Mail signature feature exceptions.

Every error carries an :class:`ErrorKind` and a message that can be shown to
the user as-is.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..models.signature_enums import ErrorKind


class SignatureError(Exception):
    """Base exception for the mail signature feature."""

    kind: ErrorKind = ErrorKind.WRITE_FAILED

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class DirectoryNotFoundError(SignatureError):
    """No signatures directory could be located; ask the user for a grant."""
    kind = ErrorKind.DIRECTORY_NOT_FOUND


class PermissionDeniedError(SignatureError):
    kind = ErrorKind.PERMISSION_DENIED


class BookmarkStaleError(SignatureError):
    """The persisted access grant no longer resolves; a fresh grant is needed."""
    kind = ErrorKind.BOOKMARK_STALE


class ManifestParseError(SignatureError):
    kind = ErrorKind.MANIFEST_PARSE_FAILED


class FormatUnrecognizedError(SignatureError):
    kind = ErrorKind.FORMAT_UNRECOGNIZED


class ContentDecodeError(SignatureError):
    kind = ErrorKind.CONTENT_DECODE_FAILED


class WriteFailedError(SignatureError):
    kind = ErrorKind.WRITE_FAILED


class ImmutableFlagError(SignatureError):
    """Protection attribute could not be changed. Callers log it and carry on."""
    kind = ErrorKind.IMMUTABLE_FLAG_FAILED


class SignatureNotFoundError(SignatureError):
    kind = ErrorKind.SIGNATURE_NOT_FOUND


# Raised from list(): the UI must request a manual directory grant.
DIRECTORY_LEVEL_ERRORS = (DirectoryNotFoundError, BookmarkStaleError, PermissionDeniedError)
