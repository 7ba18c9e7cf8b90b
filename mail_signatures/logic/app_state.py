# mail_signatures/logic/app_state.py
from __future__ import annotations

from typing import Optional

from core.settings.logic.settings_manager import SettingsManager, settings_manager

from .token_sealing import FEATURE_ID

FIRST_LAUNCH_KEY = "has_launched_before"


def consume_first_launch(settings: Optional[SettingsManager] = None) -> bool:
    """
    True exactly once: on the first call ever (per settings database). The UI
    shows its permissions explanation when this returns True.
    """
    sm = settings or settings_manager
    if sm.get(FEATURE_ID, FIRST_LAUNCH_KEY, False):
        return False
    sm.set(FEATURE_ID, FIRST_LAUNCH_KEY, True)
    return True


def reset_first_launch(settings: Optional[SettingsManager] = None) -> None:
    (settings or settings_manager).delete(FEATURE_ID, FIRST_LAUNCH_KEY)
