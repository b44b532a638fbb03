"""Cacheable objects and their serialisation."""

from __future__ import annotations

import pickle
from abc import ABC, abstractmethod
from typing import Any

from .conn.client import CacheError, CommandResult

_SKIPPED_FIELDS = frozenset({"expired_time"})


def encode(obj: Any) -> bytes:
    """Serialise a value to bytes."""
    try:
        return pickle.dumps(obj)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise CacheError(f"encode error: {exc}") from exc


def decode(data: bytes) -> Any:
    """Restore a value serialised by :func:`encode`."""
    try:
        return pickle.loads(data)
    except (
        pickle.UnpicklingError,
        EOFError,
        ValueError,
        TypeError,
        AttributeError,
        ImportError,
        IndexError,
        KeyError,
    ) as exc:
        raise CacheError(f"decode error: {exc}") from exc


def _public_fields(obj: object) -> dict[str, Any]:
    return {
        name: value
        for name, value in vars(obj).items()
        if not name.startswith("_") and name not in _SKIPPED_FIELDS
    }


def _coerce(text: str, current: Any) -> Any:
    try:
        if isinstance(current, bool):
            return text == "True"
        if isinstance(current, int):
            return int(text)
        if isinstance(current, float):
            return float(text)
    except ValueError as exc:
        raise CacheError(f"decode map error: {exc}") from exc
    return text


class CacheObj(ABC):
    """An object stored under one key as a serialised value.

    The public attributes of an instance are its cached state;
    ``expired_time`` holds the remaining time to live in seconds.
    """

    expired_time: float = 0
    _result: CommandResult | None = None

    @property
    @abstractmethod
    def key(self) -> str:
        """The Redis key the object is stored under."""

    def encode(self) -> bytes:
        return encode(_public_fields(self))

    def decode(self, data: bytes) -> None:
        state = decode(data)
        if not isinstance(state, dict):
            raise CacheError("cached value is not an object state")
        for name, value in state.items():
            setattr(self, name, value)

    def bind_result(self, result: CommandResult) -> None:
        """Attach a pending pipeline result to decode once it has run."""
        self._result = result

    def _bound(self) -> CommandResult:
        if self._result is None:
            raise CacheError("result not set")
        return self._result

    def has_error(self) -> bool:
        return self._bound().error is not None

    def decode_pipe(self) -> None:
        """Decode the bound pipeline result into this object."""
        value = self._bound().result()
        if isinstance(value, str):
            value = value.encode()
        self.decode(value)


class CacheMapObj(ABC):
    """An object stored as a Redis hash of string fields."""

    expired_time: float = 0

    @property
    @abstractmethod
    def key(self) -> str:
        """The Redis key the hash is stored under."""

    def encode_map(self) -> dict[str, str]:
        return {name: str(value) for name, value in _public_fields(self).items()}

    def decode_map(self, data: dict[str, str]) -> None:
        """Set attributes from hash fields, keeping the types already held."""
        for name, text in data.items():
            setattr(self, name, _coerce(text, getattr(self, name, None)))