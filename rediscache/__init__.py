"""Object caching and session storage on top of Redis."""

__version__ = "0.1.0"
__all__ = ["cache", "obj", "conn"]