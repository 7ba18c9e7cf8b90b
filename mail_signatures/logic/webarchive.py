# mail_signatures/logic/webarchive.py
"""WebArchive container: a property list wrapping one HTML main resource."""
from __future__ import annotations

import codecs
import plistlib
from pathlib import Path
from typing import Optional
from xml.parsers.expat import ExpatError

from ..exceptions.errors import ContentDecodeError, FormatUnrecognizedError

MAIN_RESOURCE = "WebMainResource"
SUBRESOURCES = "WebSubresources"
PLACEHOLDER_URL = "about:blank"


def build(html: str) -> bytes:
    """Binary plist holding ``html`` as the UTF-8 main resource and no subresources."""
    archive = {
        MAIN_RESOURCE: {
            "WebResourceData": html.encode("utf-8"),
            "WebResourceFrameName": "",
            "WebResourceMIMEType": "text/html",
            "WebResourceTextEncodingName": "UTF-8",
            "WebResourceURL": PLACEHOLDER_URL,
        },
        SUBRESOURCES: [],
    }
    return plistlib.dumps(archive, fmt=plistlib.FMT_BINARY, sort_keys=True)


def extract_html(data: bytes, *, path: Optional[Path] = None) -> str:
    name = path.name if path else "archive"
    try:
        root = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError, KeyError) as exc:
        raise FormatUnrecognizedError(f"{name} is not a web archive", path=path) from exc

    main = root.get(MAIN_RESOURCE) if isinstance(root, dict) else None
    blob = main.get("WebResourceData") if isinstance(main, dict) else None
    if not isinstance(blob, bytes):
        raise FormatUnrecognizedError(f"{name} has no main HTML resource", path=path)

    encoding = main.get("WebResourceTextEncodingName") or "UTF-8"
    try:
        codecs.lookup(str(encoding))
        return blob.decode(str(encoding))
    except LookupError as exc:
        raise ContentDecodeError(f"{name} declares unknown text encoding {encoding!r}", path=path) from exc
    except UnicodeDecodeError as exc:
        raise ContentDecodeError(f"{name} is not valid {encoding} text", path=path) from exc
