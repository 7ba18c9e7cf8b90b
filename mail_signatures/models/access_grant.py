from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AccessGrant:
    """
    A user-approved directory restored from its persisted token.

    ``is_stale`` means the token still unseals but no longer points at the
    same directory (moved, deleted or replaced); the user must grant again.
    """
    token: str
    directory: Path
    is_stale: bool = False
