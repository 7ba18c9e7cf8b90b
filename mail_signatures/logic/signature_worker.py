# mail_signatures/logic/signature_worker.py
"""
Background execution of repository operations.

The UI thread submits work and gets a Future back; results are delivered on
the worker thread, so UI code must marshal them back itself (Tk: ``after``).
There is no cancellation: compare the signature id of a finished future with
what is currently selected and drop stale results.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from ..models.signature import Signature, SignatureContent
from ..models.manifest_entry import ManifestAnalysis
from .signature_repository import SignatureRepository

logger = logging.getLogger(__name__)


class SignatureWorker:
    def __init__(self, repository: SignatureRepository, *, max_workers: Optional[int] = None) -> None:
        self._repo = repository
        workers = max_workers or repository.session.config.worker_threads
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(workers)), thread_name_prefix="mailsig")

    def _submit(self, label: str, fn: Callable[..., Any], *args: Any) -> Future:
        future = self._pool.submit(fn, *args)
        future.add_done_callback(lambda f: self._report(label, f))
        return future

    @staticmethod
    def _report(label: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("%s failed: %s", label, exc)

    # -------- operations -----------------------------------------------------
    def list(self) -> "Future[List[Signature]]":
        return self._submit("list", self._repo.list)

    def create(self, name: str, content: SignatureContent) -> "Future[Signature]":
        return self._submit("create", self._repo.create, name, content)

    def save(self, signature_id: str) -> "Future[Signature]":
        return self._submit(f"save {signature_id}", self._repo.save, signature_id)

    def delete(self, signature_id: str) -> "Future[None]":
        return self._submit(f"delete {signature_id}", self._repo.delete, signature_id)

    def analyze_manifest(self) -> "Future[ManifestAnalysis]":
        return self._submit("analyze manifest", self._repo.analyze_manifest)

    # -------- lifecycle ------------------------------------------------------
    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "SignatureWorker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
