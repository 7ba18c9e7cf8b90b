# mail_signatures/models/signature_enums.py
from __future__ import annotations
from enum import Enum


class SignatureFormat(str, Enum):
    """On-disk payload format of a signature record."""
    RAW_HTML = "raw_html"         # <id>.mailsignature, UTF-8 HTML bytes
    WEB_ARCHIVE = "web_archive"   # <id>.webarchive, property-list container


class PayloadFormat(str, Enum):
    """Outcome of format detection for a file or a whole directory."""
    RAW_HTML = "raw_html"
    WEB_ARCHIVE = "web_archive"
    PLAIN_TEXT_FALLBACK = "plain_text"

    def to_signature_format(self) -> SignatureFormat:
        # plain text is rewritten as HTML on save
        if self is PayloadFormat.WEB_ARCHIVE:
            return SignatureFormat.WEB_ARCHIVE
        return SignatureFormat.RAW_HTML


class ErrorKind(str, Enum):
    DIRECTORY_NOT_FOUND = "DirectoryNotFound"
    PERMISSION_DENIED = "PermissionDenied"
    BOOKMARK_STALE = "BookmarkStale"
    MANIFEST_PARSE_FAILED = "ManifestParseFailed"
    FORMAT_UNRECOGNIZED = "FormatUnrecognized"
    CONTENT_DECODE_FAILED = "ContentDecodeFailed"
    WRITE_FAILED = "WriteFailed"
    IMMUTABLE_FLAG_FAILED = "ImmutableFlagFailed"
    SIGNATURE_NOT_FOUND = "SignatureNotFound"
    MANIFEST_ENTRY_SKIPPED = "ManifestEntrySkipped"
    MANIFEST_ENTRY_UNRESOLVED = "ManifestEntryUnresolved"
    DUPLICATE_SIGNATURE_ID = "DuplicateSignatureId"


class ProtectionMode(str, Enum):
    AUTO = "auto"
    IMMUTABLE = "immutable"
    READONLY = "readonly"
    OFF = "off"
