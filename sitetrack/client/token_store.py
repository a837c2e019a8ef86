# SiteTrack Client - Token Store
# File-backed "local storage" for the bearer token, user profile and role

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Union


logger = logging.getLogger(__name__)

TOKEN_KEY = "authToken"
USER_KEY = "user"
USER_TYPE_KEY = "userType"

ROLES = ("admin", "employee")

TokenListener = Callable[[Optional[str]], None]


class TokenStore:
    """
    Persistent key/value storage for the client session.

    Keys mirror a browser's local storage: authToken, user (a JSON
    object) and userType ("admin" | "employee").

    Every read goes back to the file, so a token written by another
    process (or another TokenStore on the same path) is seen on the
    next get(). Writes replace the file atomically.

    Each write is a read-modify-write with no lock across processes:
    two processes writing at the same moment can lose one update (last
    replace wins). logout() removes all three keys in a single replace,
    so a session is never left half cleared.

    Usage:
        store = TokenStore("~/.sitetrack/storage.json")
        unsubscribe = store.subscribe(lambda token: print("token:", token))

        store.set("abc123")
        store.get()          # "abc123"
        store.logout()       # removes token, user and role
        unsubscribe()

    Listeners are called synchronously after every set/clear/logout with
    the token now in effect (None after a clear).
    """

    def __init__(self, path: Union[str, os.PathLike]):
        self.path = Path(path).expanduser()
        self._listeners: list[TokenListener] = []

    # ------------------------------------------------------------------
    # Raw storage
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable token store %s: %s", self.path, e)
            return {}

        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def _update(self, **values: Any) -> None:
        data = self._read()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self._write(data)

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    def get(self) -> Optional[str]:
        """Current bearer token, read fresh from storage."""
        token = self._read().get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def set(self, token: str) -> None:
        if not token:
            raise ValueError("token must be a non-empty string")
        self._update(**{TOKEN_KEY: token})
        self._notify(token)

    def clear(self) -> None:
        self._update(**{TOKEN_KEY: None})
        self._notify(None)

    def is_authenticated(self) -> bool:
        return self.get() is not None

    # ------------------------------------------------------------------
    # User and role
    # ------------------------------------------------------------------

    def get_user(self) -> Optional[dict]:
        user = self._read().get(USER_KEY)
        return user if isinstance(user, dict) else None

    def set_user(self, user: dict) -> None:
        self._update(**{USER_KEY: user})

    def get_role(self) -> Optional[str]:
        role = self._read().get(USER_TYPE_KEY)
        return role if role in ROLES else None

    def set_role(self, role: str) -> None:
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        self._update(**{USER_TYPE_KEY: role})

    def logout(self) -> None:
        """Remove the token, user and role together."""
        self._update(**{TOKEN_KEY: None, USER_KEY: None, USER_TYPE_KEY: None})
        self._notify(None)

    # ------------------------------------------------------------------
    # Session-changed events
    # ------------------------------------------------------------------

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register a session-changed listener; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, token: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception:
                logger.exception("Token listener %r failed", listener)
