"""
Test bootstrap: config and SQLite files go to a throwaway directory.

Runs before any test module imports ``core``; the config service and the
event log are module-level singletons that read these paths once.
"""
from __future__ import annotations

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="mailsig-tests-")

os.environ["MAILSIG_CONFIG_DIR"] = os.path.join(_TMP, "config")
os.environ["MAILSIG_DATABASE__SETTINGS"] = os.path.join(_TMP, "settings.db")
os.environ["MAILSIG_DATABASE__LOGGING"] = os.path.join(_TMP, "logs.db")
os.environ["XDG_CONFIG_HOME"] = os.path.join(_TMP, "xdg")
# chflags only exists on BSD/macOS; mode bits behave the same everywhere
os.environ["MAILSIG_SIGNATURES__PROTECT_AFTER_WRITE"] = "readonly"
