"""Redis connection configuration and a retrying client wrapper."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, TypeVar

import redis

DEFAULT_PORT = 6379
DEFAULT_RETRY = 3
RETRY_DELAY = 200e-6
POOL_SIZE = 10
POOL_TIMEOUT = 4
DIAL_TIMEOUT = 5
IO_TIMEOUT = 3

NIL_MESSAGE = "redis: nil"

T = TypeVar("T")


class CacheError(Exception):
    """Raised when a Redis operation fails."""


def _seconds(exp: float | timedelta) -> float:
    if isinstance(exp, timedelta):
        return exp.total_seconds()
    return float(exp)


def _expiry_kwargs(exp: float | timedelta) -> dict[str, int]:
    seconds = _seconds(exp)
    if seconds <= 0:
        return {}
    return {"px": max(1, int(round(seconds * 1000)))}


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode()
    return str(value).encode()


def _require(value: T | None) -> T:
    if value is None:
        raise CacheError(NIL_MESSAGE)
    return value


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, DEFAULT_PORT
    return host or "localhost", int(port)


@dataclass
class CommandResult:
    """Outcome of a queued pipeline command, filled in on execution."""

    value: Any = None
    error: Exception | None = None

    def result(self) -> Any:
        """Return the value, or raise the command's error."""
        if self.error is None:
            return self.value
        if isinstance(self.error, CacheError):
            raise self.error
        raise CacheError(str(self.error)) from self.error


class CachePipeline:
    """Non-transactional batch of commands sent in one round trip."""

    def __init__(self, pipe: Any) -> None:
        self._pipe = pipe
        self._pending: list[tuple[CommandResult, bool]] = []

    def _queue(self, nil_is_error: bool) -> CommandResult:
        result = CommandResult()
        self._pending.append((result, nil_is_error))
        return result

    def get(self, key: str) -> CommandResult:
        self._pipe.get(key)
        return self._queue(nil_is_error=True)

    def set(self, key: str, value: Any, exp: float | timedelta = 0) -> CommandResult:
        self._pipe.set(key, value, **_expiry_kwargs(exp))
        return self._queue(nil_is_error=False)

    def execute(self) -> list[CommandResult]:
        """Run the queued commands; raise on the first failed one."""
        pending, self._pending = self._pending, []
        try:
            replies = self._pipe.execute(raise_on_error=False)
        except redis.RedisError as exc:
            for result, _ in pending:
                result.error = exc
            raise CacheError(str(exc)) from exc

        first_error: Exception | None = None
        for (result, nil_is_error), reply in zip(pending, replies):
            if isinstance(reply, Exception):
                result.error = reply
            elif reply is None and nil_is_error:
                result.error = CacheError(NIL_MESSAGE)
            else:
                result.value = reply
            if result.error is not None and first_error is None:
                first_error = result.error
        if first_error is not None:
            raise CacheError(str(first_error)) from first_error
        return [result for result, _ in pending]


class RedisClient:
    """Redis client whose operations are retried a few times before failing."""

    def __init__(self, client: Any, *, db: int = 0, retry: int = DEFAULT_RETRY) -> None:
        if retry < 1:
            raise ValueError("retry must be at least 1")
        self._client = client
        self.db = db
        self.retry = retry

    def __enter__(self) -> RedisClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _attempt(self, call: Callable[[], T]) -> T:
        last_error: Exception | None = None
        for _ in range(self.retry):
            try:
                return call()
            except (redis.RedisError, CacheError) as exc:
                last_error = exc
            time.sleep(RETRY_DELAY)
        assert last_error is not None
        raise last_error

    def _retrying(self, label: str, call: Callable[[], T]) -> T:
        try:
            return self._attempt(call)
        except (redis.RedisError, CacheError) as exc:
            raise CacheError(f"redis {label} error: {exc}") from exc

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def ping(self) -> str:
        """Return "PONG" when the server answers, otherwise an empty string."""
        try:
            return "PONG" if self._client.ping() else ""
        except redis.RedisError:
            return ""

    def count_keys(self) -> int:
        """Number of keys in this client's database, from the keyspace info."""
        try:
            info = self._attempt(lambda: self._client.info("keyspace"))
        except (redis.RedisError, CacheError):
            info = {}
        entry = info.get(f"db{self.db}")
        if not entry:
            raise CacheError(f"no key count for db{self.db}")
        try:
            return int(entry["keys"])
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheError(f"invalid key count for db{self.db}") from exc

    def get(self, key: str) -> bytes:
        return _as_bytes(self._retrying("get", lambda: _require(self._client.get(key))))

    def set(self, key: str, value: Any, exp: float | timedelta = 0) -> str:
        """Store a value; a positive ``exp`` (seconds) sets its time to live."""
        kwargs = _expiry_kwargs(exp)
        self._retrying("set", lambda: self._client.set(key, value, **kwargs))
        return "OK"

    def delete(self, *keys: str) -> int:
        return int(self._retrying("del", lambda: self._client.delete(*keys)))

    def delete_keys(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` and return how many went."""
        try:
            keys = self._attempt(lambda: self._client.keys(pattern))
        except (redis.RedisError, CacheError):
            keys = []
        if not keys:
            return 0
        try:
            return int(self._client.delete(*keys))
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc

    def lpush(self, key: str, value: Any) -> int:
        return int(self._retrying("lpush", lambda: self._client.lpush(key, value)))

    def rpop(self, key: str) -> bytes:
        return _as_bytes(self._retrying("rpop", lambda: _require(self._client.rpop(key))))

    def hget(self, key: str, field: str) -> str:
        """Value of a hash field, or an empty string if it cannot be read."""
        try:
            return _text(self._attempt(lambda: _require(self._client.hget(key, field))))
        except (redis.RedisError, CacheError):
            return ""

    def hset(self, key: str, values: dict[str, str]) -> None:
        try:
            self._attempt(lambda: self._client.hset(key, mapping=dict(values)))
        except (redis.RedisError, CacheError) as exc:
            raise CacheError(str(exc)) from exc

    def hgetall(self, key: str) -> dict[str, str]:
        """All fields of a hash, or an empty mapping if it cannot be read."""
        try:
            raw = self._attempt(lambda: self._client.hgetall(key))
        except (redis.RedisError, CacheError):
            return {}
        return {_text(name): _text(value) for name, value in raw.items()}

    def exists(self, key: str) -> bool:
        try:
            return self._attempt(lambda: self._client.exists(key)) == 1
        except (redis.RedisError, CacheError):
            return False

    def expire(self, key: str, seconds: float | timedelta) -> bool:
        millis = max(1, int(round(_seconds(seconds) * 1000)))
        return bool(self._retrying("expired", lambda: self._client.pexpire(key, millis)))

    def pipeline(self) -> CachePipeline:
        return CachePipeline(self._client.pipeline(transaction=False))

    def keys(self, pattern: str) -> list[str]:
        found = self._retrying("get keys", lambda: self._client.keys(pattern))
        return [_text(key) for key in found]

    def ttl(self, key: str) -> int:
        """Remaining time to live in seconds; -1 without expiry, -2 if missing."""
        return int(self._retrying("ttl", lambda: self._client.ttl(key)))

    def mget(self, keys: list[str]) -> list[Any]:
        return list(self._retrying("mget", lambda: self._client.mget(list(keys))))


def _connect(address: str, db: int) -> Any:
    host, port = _split_address(address)
    pool = redis.BlockingConnectionPool(
        host=host,
        port=port,
        db=db,
        max_connections=POOL_SIZE,
        timeout=POOL_TIMEOUT,
        socket_connect_timeout=DIAL_TIMEOUT,
        socket_timeout=IO_TIMEOUT,
    )
    return redis.Redis(connection_pool=pool)


@dataclass
class RedisConf:
    """Server address and a mapping of logical names to database numbers."""

    host: str
    pwd: str | None = None
    db_map: dict[str, int] = field(default_factory=dict)
    _connections: dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def new_redis_db_conn(self, name: str) -> RedisClient:
        """Return a client for the named database, reusing its connection pool."""
        with self._lock:
            if name not in self.db_map:
                raise CacheError(f"db not found: {name}")
            db = self.db_map[name]
            connection = self._connections.get(name)
            if connection is None:
                connection = _connect(self.host, db)
                self._connections[name] = connection
            client = RedisClient(connection, db=db)
            if client.ping() != "PONG":
                raise CacheError("redis connect error")
            return client