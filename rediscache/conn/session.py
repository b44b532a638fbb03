"""Session storage kept in Redis as JSON documents."""

from __future__ import annotations

import json
import threading
from typing import Any

import redis

from .client import CacheError, RedisConf, _split_address

SESSION_PREFIX = "session_"


def _expiry_kwargs(expired: int) -> dict[str, int]:
    if expired > 0:
        return {"ex": int(expired)}
    return {}


def _parse_value(raw: bytes | str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        values = json.loads(raw)
    except (ValueError, TypeError) as exc:
        raise CacheError(f"invalid session data: {exc}") from exc
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise CacheError("invalid session data: not an object")
    return values


def new_manager_store(conf: RedisConf, name: str) -> ManagerStore:
    """Connect to the named database of ``conf`` and return a session manager."""
    if name not in conf.db_map:
        raise CacheError(f"db not found: {name}")
    host, port = _split_address(conf.host)
    client = redis.Redis(host=host, port=port, db=conf.db_map[name])
    try:
        alive = bool(client.ping())
    except redis.RedisError:
        alive = False
    if not alive:
        client.close()
        raise CacheError("redis connect error")
    return ManagerStore(client, SESSION_PREFIX + name)


class ManagerStore:
    """Creates, loads and removes session stores held under a key prefix."""

    def __init__(self, client: Any, prefix: str = "") -> None:
        self._client = client
        self.prefix = prefix

    def __enter__(self) -> ManagerStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _key(self, sid: str) -> str:
        return self.prefix + sid

    def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc

    def _value(self, sid: str) -> bytes | None:
        return self._call(self._client.get, self._key(sid))

    def _write(self, sid: str, data: bytes, expired: int) -> None:
        self._call(self._client.set, self._key(sid), data, **_expiry_kwargs(expired))

    def check(self, sid: str) -> bool:
        """Whether a session with this id is stored."""
        return self._call(self._client.exists, self._key(sid)) > 0

    def create(self, sid: str, expired: int) -> Store:
        """A new, empty session living ``expired`` seconds once saved."""
        return Store(self, sid, expired)

    def update(self, sid: str, expired: int) -> Store:
        """Load a session and extend its lifetime to ``expired`` seconds."""
        value = self._value(sid)
        if value is None:
            return Store(self, sid, expired)
        self._call(self._client.expire, self._key(sid), int(expired))
        return Store(self, sid, expired, _parse_value(value))

    def delete(self, sid: str) -> None:
        if not self.check(sid):
            return
        self._call(self._client.delete, self._key(sid))

    def refresh(self, old_sid: str, sid: str, expired: int) -> Store:
        """Move the session stored under ``old_sid`` to ``sid``."""
        value = self._value(old_sid)
        if value is None:
            return Store(self, sid, expired)
        pipe = self._client.pipeline(transaction=True)
        pipe.set(self._key(sid), value, **_expiry_kwargs(expired))
        pipe.delete(self._key(old_sid))
        self._call(pipe.execute)
        return Store(self, sid, expired, _parse_value(value))

    def close(self) -> None:
        self._call(self._client.close)


class Store:
    """The values of one session, written back to Redis on save."""

    def __init__(
        self,
        manager: ManagerStore,
        sid: str,
        expired: int,
        values: dict[str, Any] | None = None,
    ) -> None:
        self._manager = manager
        self._sid = sid
        self.expired = expired
        self._values: dict[str, Any] = dict(values) if values else {}
        self._lock = threading.RLock()

    @property
    def session_id(self) -> str:
        return self._sid

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, key: str) -> Any:
        """The stored value, or None when the key is absent."""
        with self._lock:
            return self._values.get(key)

    def delete(self, key: str) -> Any:
        """Remove a key and return its value, or None when it was absent."""
        with self._lock:
            return self._values.pop(key, None)

    def flush(self) -> None:
        """Drop every value and save the empty session."""
        with self._lock:
            self._values = {}
        self.save()

    def save(self) -> None:
        with self._lock:
            if self._values:
                try:
                    data = json.dumps(self._values).encode()
                except (TypeError, ValueError) as exc:
                    raise CacheError(f"cannot serialise session: {exc}") from exc
            else:
                data = b""
        self._manager._write(self._sid, data, self.expired)