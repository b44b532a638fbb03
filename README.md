# rediscache

Small helpers for keeping Python objects and web sessions in Redis.

- `rediscache.conn.client`: `RedisConf` holds a server address and a map of
  logical names to database numbers, and hands out `RedisClient` wrappers.
  Most `RedisClient` commands are retried up to three times and raise
  `CacheError` when every attempt fails. `CachePipeline` batches commands
  into one round trip.
- `rediscache.obj`: the `CacheObj` and `CacheMapObj` base classes for objects
  stored as one serialised value or as a hash, plus the module-level
  `encode` and `decode` functions. These functions serialise with `pickle`.
- `rediscache.cache`: `RedisCache` saves and loads those objects, one at a
  time or in batches through a pipeline. It records each loaded object's
  remaining time to live in `expired_time`.
- `rediscache.conn.session`: `new_manager_store`, `ManagerStore` and `Store`
  keep sessions in Redis as JSON documents, under keys prefixed with
  `session_<name>`.

## Installation

```
pip install rediscache
```

## Connecting

```python
from rediscache.conn.client import RedisConf

conf = RedisConf(host="localhost:6379", db_map={"cache": 0, "session": 1})
client = conf.new_redis_db_conn("cache")

client.set("greeting", b"hello", 60)   # expiry in seconds; 0 means none
print(client.get("greeting"))          # b'hello'
print(client.ttl("greeting"))          # seconds left, -1 without expiry, -2 if missing
print(client.count_keys())
```

`new_redis_db_conn` raises `CacheError` in two cases:

- the name is not in `db_map`;
- the server does not answer `PING`.

Clients for the same name share one connection pool of up to ten connections.

The host may be given as `host:port`. Without a port it defaults to 6379.

`RedisConf` has a `pwd` field, but it is not sent to the server.

A few commands do not raise when they fail:

- `hget` returns `""`;
- `hgetall` returns `{}`;
- `exists` returns `False`.

`delete_keys(pattern)` removes every matching key and returns how many were removed.

`RedisClient` and `ManagerStore` can be used as context managers. Both close their connection on exit.

## Caching objects

Subclass `CacheObj` and give it a `key` property. Its public attributes are what gets stored.

```python
from rediscache.cache import RedisCache
from rediscache.obj import CacheObj


class User(CacheObj):
    def __init__(self, user_id=""):
        self.user_id = user_id

    @property
    def key(self):
        return f"user:{self.user_id}"


cache = RedisCache(client)
cache.save_obj(User("42"), 300)
cache.save_objs(300, User("1"), User("2"))

loaded = cache.get_obj("user:42", User())
print(loaded.user_id, loaded.expired_time)

users = cache.get_objs(["user:1", "user:2"], User())
```

`get_objs` returns one new object of the template's type per key, in order.

- The new objects are created without calling `__init__`.
- It raises `CacheError` if any key is missing.

Objects kept in a Redis hash subclass `CacheMapObj`:

- `encode_map` turns the public attributes into string fields.
- `decode_map` reads fields back. Each field is converted to the type of the attribute it replaces (bool, int or float); otherwise it stays a string.

Write them with `save_obj_hash` and read them with `get_obj_hash`.

- `save_obj_hash` sets an expiry only when it is positive.
- `save_obj_hash` does nothing when there are no fields.

## Sessions

```python
from rediscache.conn.session import new_manager_store

manager = new_manager_store(conf, "session")
store = manager.create("sid-1", 3600)
store.set("user", "42")
store.save()

store = manager.update("sid-1", 3600)   # loads the session and extends its lifetime
print(store.get("user"))                # None when the key is absent

store = manager.refresh("sid-1", "sid-2", 3600)   # moves the session to a new id
print(manager.check("sid-1"))                     # False
manager.delete("sid-2")
manager.close()
```

More `Store` operations:

- `delete(key)` removes a value and returns it.
- `flush()` empties the session and saves it.
- `key in store` tests for a key.
- `session_id` gives the session's id.

## What it does not do

This is a library only. It provides no command-line tool and no server.

The session classes are not connected to any web framework. Your code calls them directly.

## Running the tests

```
pip install -e ".[test]"
pytest
```