"""Object cache on top of a Redis client."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TypeVar

from .conn.client import CacheError, RedisClient
from .obj import CacheMapObj, CacheObj

logger = logging.getLogger(__name__)

ObjT = TypeVar("ObjT", bound=CacheObj)
MapT = TypeVar("MapT", bound=CacheMapObj)


def _seconds(exp: float | timedelta) -> float:
    if isinstance(exp, timedelta):
        return exp.total_seconds()
    return float(exp)


class RedisCache:
    """Stores cache objects as serialised values or as hashes."""

    def __init__(self, client: RedisClient) -> None:
        self.client = client

    def save_objs(self, exp: float | timedelta, *args: CacheObj) -> None:
        """Store several objects in one pipeline."""
        pipe = self.client.pipeline()
        for obj in args:
            pipe.set(obj.key, obj.encode(), exp)
        pipe.execute()

    def save_obj(self, obj: CacheObj, exp: float | timedelta) -> None:
        logger.debug("save %s", obj.key)
        self.client.set(obj.key, obj.encode(), exp)

    def get_obj(self, key: str, obj: ObjT) -> ObjT:
        """Load the value under ``key`` into ``obj`` and return it."""
        data = self.client.get(key)
        obj.expired_time = self.client.ttl(key)
        obj.decode(data)
        return obj

    def get_objs(self, keys: list[str], template: ObjT) -> list[ObjT]:
        """Load one fresh object of the template's type per key, in order."""
        cls = type(template)
        pipe = self.client.pipeline()
        objs: list[ObjT] = []
        for key in keys:
            obj = cls.__new__(cls)
            obj.bind_result(pipe.get(key))
            objs.append(obj)
            try:
                obj.expired_time = self.client.ttl(key)
            except CacheError:
                pass
        pipe.execute()
        for obj in objs:
            if not obj.has_error():
                obj.decode_pipe()
        return objs

    def save_obj_hash(self, obj: CacheMapObj, exp: float | timedelta) -> None:
        """Store an object as a hash; a positive ``exp`` sets its lifetime."""
        data = obj.encode_map()
        if not data:
            return
        try:
            self.client.hset(obj.key, data)
        except CacheError as exc:
            raise CacheError(f"set hash error: {exc}") from exc
        if _seconds(exp) <= 0:
            return
        try:
            self.client.expire(obj.key, exp)
        except CacheError as exc:
            raise CacheError(f"set expired fail: {exc}") from exc

    def get_obj_hash(self, key: str, obj: MapT) -> MapT:
        """Load the hash under ``key`` into ``obj`` and return it."""
        obj.expired_time = self.client.ttl(key)
        obj.decode_map(self.client.hgetall(key))
        return obj