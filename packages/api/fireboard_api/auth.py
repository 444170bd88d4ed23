"""In-memory bearer token cache with renewal."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from .errors import AuthError, ExpiredToken, NoValidToken

if TYPE_CHECKING:  # pragma: no cover
    from .source import RemoteDataSource


TOKEN_VALIDITY = timedelta(hours=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    token: str
    expiry: datetime

    def usable(self, now: datetime) -> bool:
        return bool(self.token) and self.expiry > now


class TokenCache:
    """Holds a single credential.

    Readers grab the current ``Credential`` reference without locking; the
    pair is immutable and swapped in one assignment, so a reader sees either the
    old or the new credential. Writers are serialized by ``_write_lock``.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow, validity: timedelta = TOKEN_VALIDITY) -> None:
        self._clock = clock
        self._validity = validity
        self._credential: Credential | None = None
        self._write_lock = threading.Lock()

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def store(self, token: str, expiry: datetime) -> None:
        if not token:
            return
        with self._write_lock:
            self._credential = Credential(token=token, expiry=expiry)

    def get_current_token(self, now: datetime | None = None) -> str:
        cred = self._credential
        if cred is None or not cred.token:
            raise NoValidToken()
        now = now or self._clock()
        if cred.expiry <= now:
            raise ExpiredToken()
        return cred.token

    def needs_renewal(self, now: datetime | None = None) -> bool:
        cred = self._credential
        return cred is None or not cred.usable(now or self._clock())

    def renew(self, source: "RemoteDataSource", username: str, password: str, now: datetime | None = None) -> str:
        token = source.authenticate(username, password)
        if not token:
            raise AuthError("authentication returned an empty token", func="authLogin")
        issued = now or self._clock()
        self.store(token, issued + self._validity)
        return token

    def authorization_header(self, now: datetime | None = None) -> str:
        return "Token " + self.get_current_token(now)
