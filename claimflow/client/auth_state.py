import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import jwt


logger = logging.getLogger(__name__)


def token_exp(token: Optional[str]) -> Optional[int]:
    """``exp`` claim of a JWT without verifying it; ``None`` if unreadable."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = payload.get("exp")
    return int(exp) if exp is not None else None


class AuthState:
    """Signed-in user and tokens, optionally persisted to a JSON file."""

    def __init__(self, storage_path: Optional[Path | str] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self.user: Optional[dict] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.is_authenticated = False
        self.is_loading = False
        self.is_initialized = False
        self.error: Optional[str] = None
        self.message: Optional[str] = None

    def set_tokens(self, user: dict, access_token: str, refresh_token: Optional[str] = None, message: Optional[str] = None) -> None:
        self.user = user
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token
        self.message = message
        self.is_authenticated = True
        self.is_loading = False
        self.is_initialized = True
        self.error = None
        self._persist()

    def set_user(self, user: dict) -> None:
        self.user = user
        self.is_authenticated = True
        self.is_initialized = True
        self.error = None
        self._persist()

    def set_loading(self, loading: bool) -> None:
        self.is_loading = loading

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self.is_loading = False

    def clear_error(self) -> None:
        self.error = None

    def logout(self) -> None:
        self.user = None
        self.access_token = None
        self.refresh_token = None
        self.is_authenticated = False
        self.is_loading = False
        self.is_initialized = True
        self.error = None
        self._clear_storage()

    def update_profile(self, **changes: Any) -> None:
        if self.user is None:
            return
        self.user = {**self.user, **changes}
        self._persist()

    def load_stored(self, now: Optional[float] = None) -> bool:
        """Restore a stored session, dropping it when the access token has expired."""
        self.is_initialized = True
        if not self.storage_path or not self.storage_path.exists():
            return False
        try:
            data = json.loads(self.storage_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Stored auth at %s is unreadable, clearing it: %s", self.storage_path, e)
            self._clear_storage()
            return False
        token = data.get("access_token")
        exp = token_exp(token)
        if not token or exp is None or exp <= (now if now is not None else time.time()):
            logger.info("Stored access token is expired, clearing auth data")
            self._clear_storage()
            self.user = None
            self.access_token = None
            self.is_authenticated = False
            return False
        self.user = data.get("user")
        self.access_token = token
        self.refresh_token = data.get("refresh_token")
        self.is_authenticated = True
        self.error = None
        return True

    def _persist(self) -> None:
        if not self.storage_path:
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"user": self.user, "access_token": self.access_token, "refresh_token": self.refresh_token}
        self.storage_path.write_text(json.dumps(payload, default=str), encoding="utf-8")

    def _clear_storage(self) -> None:
        if self.storage_path:
            self.storage_path.unlink(missing_ok=True)
