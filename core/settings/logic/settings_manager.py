"""
core/settings/logic/settings_manager.py
=======================================

High-level API for settings.
"""

from __future__ import annotations
from typing import Any

from core.config.config_service import config_service
from core.logging.logic.logger import logger
from core.settings.logic.settings_repository import SettingsRepository


class SettingsManager:
    def __init__(self, repository: SettingsRepository | None = None) -> None:
        self._repo = repository or SettingsRepository(config_service.database.settings)

    # ------------------------------------------------------------------ #
    #  API                                                               #
    # ------------------------------------------------------------------ #
    def get(
        self,
        namespace: str,
        key: str,
        fallback: Any | None = None,
        *,
        user_specific: bool = False,
        user_id: str | None = None,
    ) -> Any | None:
        if user_specific and not user_id:
            logger.log("SettingsManager", "MissingUserID", level="WARNING", message=f"{namespace}.{key}")
            return fallback
        return self._repo.get(namespace, key, user_id if user_specific else None, fallback)

    def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        *,
        user_specific: bool = False,
        user_id: str | None = None,
    ) -> None:
        if user_specific and not user_id:
            raise ValueError("user_id is required when user_specific=True")
        self._repo.set(namespace, key, value, user_id if user_specific else None)
        logger.log("SettingsManager", "Set", level="DEBUG", message=f"{namespace}.{key}")

    def delete(
        self,
        namespace: str,
        key: str,
        *,
        user_specific: bool = False,
        user_id: str | None = None,
    ) -> None:
        self._repo.delete(namespace, key, user_id if user_specific else None)


# Global instance
settings_manager: SettingsManager = SettingsManager()  # pylint: disable=invalid-name
