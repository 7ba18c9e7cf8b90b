# mail_signatures/logic/token_sealing.py
from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken
from core.settings.logic.settings_manager import SettingsManager

FEATURE_ID = "mail_signatures"
_KEY_FIELD = "bookmark_key"


def _load_key(sm: SettingsManager) -> Fernet:
    """Key stored as urlsafe base64 text; created on first use."""
    key = sm.get(FEATURE_ID, _KEY_FIELD, None)
    if not key:
        key = Fernet.generate_key().decode("ascii")
        sm.set(FEATURE_ID, _KEY_FIELD, key)
    try:
        return Fernet(str(key).encode("ascii"))
    except (ValueError, UnicodeError) as exc:
        # a damaged key cannot unseal anything; the caller reports the grant as stale
        raise InvalidToken("Stored bookmark key is malformed") from exc


def seal(sm: SettingsManager, payload: bytes) -> str:
    return _load_key(sm).encrypt(payload).decode("ascii")


def unseal(sm: SettingsManager, token: str) -> bytes:
    """Raises InvalidToken when the token was not sealed with the stored key."""
    return _load_key(sm).decrypt(token.encode("ascii"))
