# mail_signatures/logic/protection_policy.py
"""
Protect-after-write policies.

The mail client re-syncs its signature files and would overwrite an edit made
behind its back, so a written payload is locked afterwards and unlocked again
before the next write or delete. How a file is locked depends on what the
platform offers:

    ImmutableFlagPolicy   BSD user-immutable flag (os.chflags / UF_IMMUTABLE)
    ReadOnlyModePolicy    clear the write permission bits
    NoProtectionPolicy    do nothing

``clear`` on a missing file is a no-op. Failures raise ImmutableFlagError;
callers decide whether that is fatal.
"""
from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Union

from ..exceptions.errors import ImmutableFlagError
from ..models.signature_enums import ProtectionMode

logger = logging.getLogger(__name__)

_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


def supports_immutable_flag() -> bool:
    return hasattr(os, "chflags") and hasattr(stat, "UF_IMMUTABLE")


class ProtectionPolicy:
    name = "off"

    def clear(self, path: Path) -> None:
        pass

    def apply(self, path: Path) -> None:
        pass

    def is_protected(self, path: Path) -> bool:
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class NoProtectionPolicy(ProtectionPolicy):
    pass


class ImmutableFlagPolicy(ProtectionPolicy):
    name = "immutable"

    def clear(self, path: Path) -> None:
        try:
            flags = os.lstat(path).st_flags
            if flags & stat.UF_IMMUTABLE:
                os.chflags(path, flags & ~stat.UF_IMMUTABLE)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise ImmutableFlagError(f"Cannot unlock {Path(path).name}: {exc.strerror}", path=Path(path)) from exc

    def apply(self, path: Path) -> None:
        try:
            flags = os.lstat(path).st_flags
            os.chflags(path, flags | stat.UF_IMMUTABLE)
        except OSError as exc:
            raise ImmutableFlagError(f"Cannot lock {Path(path).name}: {exc.strerror}", path=Path(path)) from exc

    def is_protected(self, path: Path) -> bool:
        try:
            return bool(os.lstat(path).st_flags & stat.UF_IMMUTABLE)
        except OSError:
            return False


class ReadOnlyModePolicy(ProtectionPolicy):
    name = "readonly"

    def clear(self, path: Path) -> None:
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
            if not mode & stat.S_IWUSR:
                os.chmod(path, mode | stat.S_IWUSR)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise ImmutableFlagError(f"Cannot make {Path(path).name} writable: {exc.strerror}",
                                     path=Path(path)) from exc

    def apply(self, path: Path) -> None:
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
            os.chmod(path, mode & ~_WRITE_BITS)
        except OSError as exc:
            raise ImmutableFlagError(f"Cannot make {Path(path).name} read-only: {exc.strerror}",
                                     path=Path(path)) from exc

    def is_protected(self, path: Path) -> bool:
        try:
            return not os.stat(path).st_mode & _WRITE_BITS
        except OSError:
            return False


def policy_for(mode: Union[ProtectionMode, str]) -> ProtectionPolicy:
    """Policy for a ``protect_after_write`` setting (auto|immutable|readonly|off)."""
    try:
        mode = ProtectionMode(str(getattr(mode, "value", mode)).strip().lower())
    except ValueError:
        logger.warning("Unknown protect_after_write value %r, using 'auto'", mode)
        mode = ProtectionMode.AUTO

    if mode is ProtectionMode.OFF:
        return NoProtectionPolicy()
    if mode is ProtectionMode.READONLY:
        return ReadOnlyModePolicy()
    if supports_immutable_flag():
        return ImmutableFlagPolicy()
    if mode is ProtectionMode.IMMUTABLE:
        logger.warning("Immutable file flag not supported on this platform, using read-only mode")
    return ReadOnlyModePolicy()
