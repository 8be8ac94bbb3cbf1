"""Home Dashboard (server): keeps the audio topology in sync and serves the api."""

from .server import HomeDash

__all__ = ["HomeDash"]
