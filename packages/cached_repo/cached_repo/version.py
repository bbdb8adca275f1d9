"""Version information for cached_repo."""

__version__ = "0.1.0"
