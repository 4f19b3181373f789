import json
import time
from dataclasses import dataclass
from typing import Optional

from clinic_giving.extensions import redis_client

# Refresh this many seconds before the partner-declared expiry
TOKEN_SAFETY_BUFFER = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    @classmethod
    def issued(cls, value: str, expires_in: int, now: Optional[float] = None) -> 'AccessToken':
        issued_at = time.time() if now is None else now
        return cls(value=value, expires_at=issued_at + expires_in - TOKEN_SAFETY_BUFFER)

    def is_valid(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) < self.expires_at


class InMemoryTokenCache:
    """Process-local token cache. Concurrent refreshes are harmless, last write wins."""

    def __init__(self):
        self._token: Optional[AccessToken] = None

    def get(self) -> Optional[AccessToken]:
        if self._token and self._token.is_valid():
            return self._token
        return None

    def set(self, token: AccessToken) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class RedisTokenCache:
    """Token cache shared by every worker process through Redis."""

    def __init__(self, key: str = 'mpesa:oauth_token', client=None):
        self.key = key
        self.client = client or redis_client

    def get(self) -> Optional[AccessToken]:
        cached = self.client.get(self.key)
        if not cached:
            return None
        data = json.loads(cached)
        token = AccessToken(value=data['value'], expires_at=float(data['expires_at']))
        return token if token.is_valid() else None

    def set(self, token: AccessToken) -> None:
        ttl = max(int(token.expires_at - time.time()), 1)
        self.client.set(
            self.key,
            json.dumps({'value': token.value, 'expires_at': token.expires_at}),
            ex=ttl
        )

    def clear(self) -> None:
        self.client.delete(self.key)
