"""Redis connection configuration, retrying clients and the session store."""

__all__ = ["client", "session"]