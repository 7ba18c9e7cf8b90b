# mail_signatures/logic/persistence_writer.py
"""
Writes Signature records back to disk.

write():
    1) join the access scope of the granted directory (if the target is inside it)
    2) unlock the target (protection policy)
    3) serialize (web archive or raw UTF-8 HTML)
    4) atomic replace: temp file in the same directory, fsync, os.replace
    5) lock the target again; failure here is logged, not raised
    6) leave the access scope (always)

Writes to the same path are serialized; distinct paths proceed in parallel.
"""
from __future__ import annotations

import logging
import os
import stat
import tempfile
import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional

from core.logging.logic.logger import logger as event_logger

from ..exceptions.errors import ImmutableFlagError, WriteFailedError
from ..models.signature import Signature
from ..models.signature_enums import SignatureFormat
from . import content_codec, webarchive
from .protection_policy import NoProtectionPolicy, ProtectionPolicy
from .token_sealing import FEATURE_ID

logger = logging.getLogger(__name__)

_DEFAULT_MODE = 0o644


def serialize(signature: Signature) -> bytes:
    """Payload bytes for the record's format; canonical HTML wins over regenerated HTML."""
    html = content_codec.reconcile(signature.rich_content, signature.canonical_html)
    if signature.format is SignatureFormat.WEB_ARCHIVE:
        return webarchive.build(html)
    return html.encode("utf-8")


class PersistenceWriter:
    def __init__(self, *, scope: Optional[Callable[[Path], ContextManager[Any]]] = None,
                 protection: Optional[ProtectionPolicy] = None,
                 event_log: Optional[Any] = None) -> None:
        """
        ``scope(path)`` enters the access scope needed to touch ``path``
        (SignatureSession.scope); without it no scope is taken.
        """
        self._scope = scope or (lambda path: nullcontext())
        self.protection = protection or NoProtectionPolicy()
        self._log = event_log or event_logger
        # path -> [lock, number of threads holding or waiting for it]
        self._path_locks: Dict[Path, List[Any]] = {}
        self._locks_guard = threading.Lock()

    # -------- public API ----------------------------------------------------
    def write(self, signature: Signature) -> None:
        target = signature.storage_path
        with self._path_lock(target), self._scope(target):
            self._unlock(target)
            try:
                payload = serialize(signature)
            except (UnicodeError, ValueError, TypeError) as exc:
                raise WriteFailedError(f"Cannot serialize {signature.filename}: {exc}", path=target) from exc
            self._atomic_replace(target, payload)
            self._relock(target, signature.signature_id)
        logger.info("Wrote %s (%s)", target.name, signature.format.value)

    def remove(self, signature: Signature) -> bool:
        """Unlock and delete the payload. Returns False when it was already gone."""
        return self.remove_path(signature.storage_path)

    def remove_path(self, target: Path) -> bool:
        with self._path_lock(target), self._scope(target):
            try:
                self.protection.clear(target)
            except ImmutableFlagError as exc:
                raise WriteFailedError(f"Cannot delete {target.name}: {exc.message}", path=target) from exc
            try:
                target.unlink()
            except FileNotFoundError:
                logger.info("%s was already removed", target.name)
                return False
            except OSError as exc:
                raise WriteFailedError(f"Cannot delete {target.name}: {exc.strerror}", path=target) from exc
        return True

    # -------- steps ---------------------------------------------------------
    def _unlock(self, target: Path) -> None:
        try:
            self.protection.clear(target)
        except ImmutableFlagError as exc:
            # the replace below reports the real failure if the file stays locked
            logger.warning("%s", exc.message)

    def _relock(self, target: Path, signature_id: str) -> None:
        try:
            self.protection.apply(target)
        except ImmutableFlagError as exc:
            logger.warning("%s; the mail client may overwrite this edit", exc.message)
            self._log.log(FEATURE_ID, exc.kind.value, level="WARNING",
                          reference_id=signature_id, message=exc.message)

    @staticmethod
    def _atomic_replace(target: Path, payload: bytes) -> None:
        try:
            mode = stat.S_IMODE(os.stat(target).st_mode) | stat.S_IWUSR
        except FileNotFoundError:
            mode = _DEFAULT_MODE
        except OSError as exc:
            raise WriteFailedError(f"Cannot access {target.name}: {exc.strerror}", path=target) from exc

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        except OSError as exc:
            raise WriteFailedError(f"Cannot write to {target.parent}: {exc.strerror}", path=target) from exc

        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp, mode)
            os.replace(tmp, target)
        except OSError as exc:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise WriteFailedError(f"Cannot save {target.name}: {exc.strerror or exc}", path=target) from exc

    # -------- locking -------------------------------------------------------
    @contextmanager
    def _path_lock(self, target: Path) -> Iterator[None]:
        key = Path(os.path.abspath(target))
        with self._locks_guard:
            entry = self._path_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._path_locks[key]

