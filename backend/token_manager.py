"""
Client-side token manager for the FireLog API

Keeps the access/refresh token pair and its expiry in a TokenStorage and
refreshes the session through POST /api/auth/refresh once the access token
is within REFRESH_BUFFER_MS of expiring.

Usage:
    manager = TokenManager("https://firelog.example.pl", FileTokenStorage("~/.firelog/session.json"))
    manager.save_session(login_response["data"]["session"])
    token = manager.get_valid_access_token()    # refreshes when needed
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
EXPIRES_AT_KEY = "expires_at"
SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)

# Refresh 5 minutes before the access token expires
REFRESH_BUFFER_MS = 5 * 60 * 1000

HTTP_TIMEOUT = 10.0


# =============================================================================
# STORAGE
# =============================================================================

class TokenStorage:
    """String key/value store, the shape of browser localStorage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str):
        raise NotImplementedError

    def remove_item(self, key: str):
        raise NotImplementedError


class MemoryTokenStorage(TokenStorage):
    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = value

    def remove_item(self, key):
        self._items.pop(key, None)


class FileTokenStorage(TokenStorage):
    """JSON object on disk, written with 0600 permissions."""

    def __init__(self, path):
        self.path = Path(os.path.expanduser(str(path)))

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable token file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)

    def get_item(self, key):
        value = self._load().get(key)
        return None if value is None else str(value)

    def set_item(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key):
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


# =============================================================================
# MANAGER
# =============================================================================

def _now_ms(clock: Callable[[], float]) -> float:
    return clock() * 1000


class TokenManager:
    def __init__(self, base_url: str, storage: Optional[TokenStorage] = None,
                 http_client: Optional[httpx.Client] = None, clock: Callable[[], float] = time.time):
        self.base_url = base_url.rstrip("/")
        self.storage = storage or MemoryTokenStorage()
        self._client = http_client
        self._clock = clock

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return self._client.request(method, url, **kwargs)
        with httpx.Client(timeout=HTTP_TIMEOUT) as client:
            return client.request(method, url, **kwargs)

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def save_session(self, session: dict):
        """expires_at may be unix seconds (as the API returns) or milliseconds."""
        expires_at = session["expires_at"]
        if expires_at < 1e12:
            expires_at = expires_at * 1000

        self.storage.set_item(ACCESS_TOKEN_KEY, session["access_token"])
        self.storage.set_item(REFRESH_TOKEN_KEY, session["refresh_token"])
        self.storage.set_item(EXPIRES_AT_KEY, str(int(expires_at)))

    def get_access_token(self) -> Optional[str]:
        return self.storage.get_item(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get_item(REFRESH_TOKEN_KEY)

    def get_expires_at(self) -> Optional[int]:
        """Expiry in milliseconds, or None."""
        value = self.storage.get_item(EXPIRES_AT_KEY)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def clear_session(self):
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY):
            self.storage.remove_item(key)

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    def is_token_valid(self) -> bool:
        expires_at = self.get_expires_at()
        if not expires_at:
            return False
        return _now_ms(self._clock) < expires_at - REFRESH_BUFFER_MS

    def needs_refresh(self) -> bool:
        expires_at = self.get_expires_at()
        if not expires_at:
            return True
        return _now_ms(self._clock) >= expires_at - REFRESH_BUFFER_MS

    # -------------------------------------------------------------------------
    # API calls
    # -------------------------------------------------------------------------

    def refresh_token(self) -> Optional[dict]:
        """New session, or None (storage cleared) when the refresh fails."""
        refresh_token = self.get_refresh_token()
        if not refresh_token:
            return None

        try:
            response = self._request("POST", "/api/auth/refresh", json={"refresh_token": refresh_token})
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Token refresh failed: {e}")
            self.clear_session()
            return None

        data = result.get("data") if isinstance(result, dict) and result.get("success") else None
        session = data.get("session", data) if isinstance(data, dict) else None
        if not isinstance(session, dict) or not all(key in session for key in SESSION_KEYS):
            self.clear_session()
            return None

        session = {
            "access_token": session["access_token"],
            "refresh_token": session["refresh_token"],
            "expires_at": session["expires_at"],
            "expires_in": session.get("expires_in"),
        }
        self.save_session(session)
        return session

    def get_valid_access_token(self) -> Optional[str]:
        if self.is_token_valid():
            return self.get_access_token()

        if self.needs_refresh():
            session = self.refresh_token()
            if session:
                return session["access_token"]
        return None

    def check_auth(self) -> dict:
        """{"is_authenticated": bool, "user": profile payload when authenticated}"""
        token = self.get_valid_access_token()
        if not token:
            return {"is_authenticated": False}

        try:
            response = self._request("GET", "/api/auth/profile",
                                     headers={"Authorization": f"Bearer {token}"})
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Auth check failed: {e}")
            self.clear_session()
            return {"is_authenticated": False}

        if isinstance(result, dict) and result.get("success") and result.get("data"):
            return {"is_authenticated": True, "user": result["data"]}

        self.clear_session()
        return {"is_authenticated": False}

    def logout(self):
        """Best effort server logout; the local session is always cleared."""
        token = self.get_access_token()
        refresh_token = self.get_refresh_token()
        if token:
            try:
                self._request("POST", "/api/auth/logout", headers={"Authorization": f"Bearer {token}"},
                              json={"refresh_token": refresh_token} if refresh_token else None)
            except httpx.HTTPError as e:
                logger.warning(f"Logout request failed: {e}")
        self.clear_session()
