"""Signed-in session for the profile client.

The session is passed to each view instead of living in a module global.
The raw credential is a JWT issued by the server; the user id, name and
show_nsfw preference are read from its claims (the client cannot verify the
signature, so claims are read unverified). The token is persisted through a
token store, the system keyring by default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from . import config
from .errors import SessionError

logger = logging.getLogger("userview.session")


@dataclass
class SessionUser:
    id: int
    username: str
    show_nsfw: bool = False


class KeyringTokenStore:
    """Persist the session JWT as a single keyring entry."""

    def __init__(self, service: str = config.KEYRING_SERVICE, key: str = config.JWT_KEY):
        self.service = service
        self.key = key

    def load(self) -> Optional[str]:
        import keyring

        try:
            return keyring.get_password(self.service, self.key)
        except Exception:
            logger.exception("session: failed to read %s from keyring", self.key)
            raise

    def save(self, token: str) -> None:
        import keyring

        try:
            keyring.set_password(self.service, self.key, token)
            logger.debug("session: wrote %s to keyring", self.key)
        except Exception:
            logger.exception("session: failed to write %s to keyring", self.key)
            raise

    def clear(self) -> None:
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(self.service, self.key)
        except PasswordDeleteError:
            # nothing stored
            pass


class MemoryTokenStore:
    """Token store that keeps the JWT in process memory only."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def load(self) -> Optional[str]:
        return self.token

    def save(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


def decode_user(token: str) -> SessionUser:
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise SessionError(f"could not decode session token: {e}") from e
    try:
        return SessionUser(
            id=int(claims["id"]),
            username=claims["username"],
            show_nsfw=bool(claims.get("show_nsfw", False)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SessionError(f"session token is missing user claims: {e}") from e


class UserSession:
    """Reader/writer for the signed-in user shared by all open views."""

    def __init__(self, store=None):
        self.store = store if store is not None else MemoryTokenStore()
        self._jwt: Optional[str] = None
        self.user: Optional[SessionUser] = None

    @classmethod
    def restore(cls, store) -> "UserSession":
        """Build a session from a previously saved token, if any."""
        session = cls(store)
        token = store.load()
        if token:
            try:
                session._set_token(token)
            except SessionError:
                logger.warning("session: discarding unreadable stored token")
                store.clear()
        return session

    @property
    def auth(self) -> Optional[str]:
        return self._jwt

    @property
    def logged_in(self) -> bool:
        return self.user is not None

    def _set_token(self, token: str) -> None:
        self.user = decode_user(token)
        self._jwt = token

    def login(self, token: str) -> None:
        """Adopt a new credential and persist it."""
        self._set_token(token)
        self.store.save(token)
        logger.debug("session: logged in as %s", self.user.username)

    def logout(self) -> None:
        self._jwt = None
        self.user = None
        self.store.clear()

    def is_own_profile(self, user_id: Optional[int]) -> bool:
        return self.user is not None and user_id is not None and self.user.id == user_id
