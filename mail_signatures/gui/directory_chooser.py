"""
===============================================================================
Directory Chooser Adapter – Tk folder dialog for the signatures folder
-------------------------------------------------------------------------------
Purpose:
    The only place that asks the user for a folder. Locator and repository
    never prompt; when they raise DirectoryNotFoundError / BookmarkStaleError
    the panel calls choose_and_grant() from the Tk main thread.
===============================================================================
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import tkinter as tk
    from tkinter import filedialog
except ImportError:  # pragma: no cover - Python built without Tk
    tk = None  # type: ignore
    filedialog = None  # type: ignore

from ..logic.session import SignatureSession
from ..models.access_grant import AccessGrant

DIALOG_TITLE = "Select the Mail signatures folder"

AskDirectory = Callable[..., Any]


def _require_main_thread() -> None:
    if threading.current_thread() is not threading.main_thread():
        raise RuntimeError("The folder chooser must be opened from the main (UI) thread")


def _parent_if_valid(parent: Any | None):
    if tk is None:
        return None
    return parent if isinstance(parent, tk.Misc) else None


def ask_signatures_directory(parent: Any | None = None, *,
                             initial_dir: Optional[Path] = None,
                             ask: Optional[AskDirectory] = None) -> Optional[Path]:
    """
    Show a folder dialog. Returns the chosen folder or None if the user
    cancelled (or Tk is unavailable). ``ask`` replaces tkinter's dialog.
    """
    _require_main_thread()
    if ask is None:
        if filedialog is None:
            return None
        ask = filedialog.askdirectory
    chosen = ask(
        parent=_parent_if_valid(parent),
        title=DIALOG_TITLE,
        initialdir=str(initial_dir) if initial_dir else None,
        mustexist=True,
    )
    return Path(chosen) if chosen else None


def choose_and_grant(session: SignatureSession, parent: Any | None = None, *,
                     ask: Optional[AskDirectory] = None) -> Optional[AccessGrant]:
    """Ask for the folder and persist the grant. None when cancelled."""
    initial = Path(session.config.default_root).expanduser()
    chosen = ask_signatures_directory(parent, initial_dir=initial if initial.is_dir() else None, ask=ask)
    if chosen is None:
        return None
    return session.grant(chosen)
