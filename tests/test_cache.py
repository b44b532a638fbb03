from datetime import timedelta

import pytest
import redis

from rediscache.cache import RedisCache
from rediscache.conn.client import CacheError, RedisClient
from rediscache.obj import CacheMapObj, CacheObj


class FakePipeline:
    def __init__(self, owner):
        self.owner = owner
        self.ops = []

    def get(self, key):
        self.ops.append(lambda: self.owner.get(key))

    def set(self, key, value, **kwargs):
        self.ops.append(lambda: self.owner.set(key, value, **kwargs))

    def execute(self, raise_on_error=False):
        return [op() for op in self.ops]


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.hashes = {}
        self.expiry_ms = {}
        self.fail_hset = False

    def _exists(self, key):
        return key in self.data or key in self.hashes

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, px=None):
        self.data[key] = value if isinstance(value, bytes) else str(value).encode()
        self.expiry_ms.pop(key, None)
        if px:
            self.expiry_ms[key] = px
        return True

    def ttl(self, key):
        if not self._exists(key):
            return -2
        if key not in self.expiry_ms:
            return -1
        return self.expiry_ms[key] // 1000

    def pexpire(self, key, millis):
        if not self._exists(key):
            return False
        self.expiry_ms[key] = millis
        return True

    def hset(self, key, mapping):
        if self.fail_hset:
            raise redis.ResponseError("WRONGTYPE")
        stored = self.hashes.setdefault(key, {})
        for name, value in mapping.items():
            stored[name.encode()] = str(value).encode()
        return len(mapping)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def pipeline(self, transaction=False):
        return FakePipeline(self)

    def close(self):
        pass


class Item(CacheObj):
    def __init__(self, ident="", name="", count=0):
        self.ident = ident
        self.name = name
        self.count = count

    @property
    def key(self):
        return f"item:{self.ident}"


class Profile(CacheMapObj):
    def __init__(self, user="", age=0, active=False):
        self.user = user
        self.age = age
        self.active = active

    @property
    def key(self):
        return f"profile:{self.user}"


class Blank(CacheMapObj):
    @property
    def key(self):
        return "blank"


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def cache(fake):
    return RedisCache(RedisClient(fake))


def test_save_and_get_obj_round_trip(cache):
    cache.save_obj(Item("a1", "widget", 4), 30)
    loaded = cache.get_obj("item:a1", Item())
    assert (loaded.ident, loaded.name, loaded.count) == ("a1", "widget", 4)
    assert loaded.expired_time == 30


def test_get_obj_without_expiry_reports_no_ttl(cache):
    cache.save_obj(Item("a2", "gadget", 1), 0)
    loaded = cache.get_obj("item:a2", Item())
    assert loaded.expired_time == -1


def test_get_obj_missing_raises(cache):
    with pytest.raises(CacheError, match="redis: nil"):
        cache.get_obj("item:none", Item())


def test_save_objs_and_get_objs_keep_order(cache):
    items = [Item("x", "first", 1), Item("y", "second", 2), Item("z", "third", 3)]
    cache.save_objs(60, *items)
    template = Item()
    loaded = cache.get_objs(["item:z", "item:x", "item:y"], template)
    assert [obj.name for obj in loaded] == ["third", "first", "second"]
    assert [obj.count for obj in loaded] == [3, 1, 2]
    assert all(obj.expired_time == 60 for obj in loaded)
    assert all(type(obj) is Item and obj is not template for obj in loaded)


def test_save_objs_accepts_timedelta(cache):
    lifetime = timedelta(minutes=2)
    cache.save_objs(lifetime, Item("t", "timed", 7))
    loaded = cache.get_obj("item:t", Item())
    assert loaded.expired_time == int(lifetime.total_seconds())


def test_get_objs_missing_key_raises(cache):
    cache.save_objs(60, Item("x", "first", 1))
    with pytest.raises(CacheError):
        cache.get_objs(["item:x", "item:missing"], Item())


def test_get_objs_empty_keys(cache):
    assert cache.get_objs([], Item()) == []


def test_hash_round_trip_keeps_types(cache):
    cache.save_obj_hash(Profile("bob", 42, True), 45)
    loaded = cache.get_obj_hash("profile:bob", Profile())
    assert (loaded.user, loaded.age, loaded.active) == ("bob", 42, True)
    assert loaded.expired_time == 45


def test_hash_without_expiry(fake, cache):
    cache.save_obj_hash(Profile("carol", 30, False), 0)
    loaded = cache.get_obj_hash("profile:carol", Profile())
    assert loaded.age == 30
    assert "profile:carol" not in fake.expiry_ms


def test_empty_hash_is_not_written(fake, cache):
    cache.save_obj_hash(Blank(), 10)
    loaded = cache.get_obj_hash("blank", Blank())
    assert loaded.expired_time == -2
    assert "blank" not in fake.hashes


def test_hash_write_failure_is_reported(fake, cache):
    fake.fail_hset = True
    with pytest.raises(CacheError, match="set hash error"):
        cache.save_obj_hash(Profile("dave", 20, True), 10)


def test_get_obj_hash_missing_key_leaves_defaults(cache):
    loaded = cache.get_obj_hash("profile:nobody", Profile("nobody", 5, False))
    assert loaded.age == 5
    assert loaded.expired_time == -2