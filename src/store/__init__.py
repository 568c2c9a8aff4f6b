"""Local package stores.

- base.py: LocalPackageStore interface
- filesystem.py: Verdaccio-style storage directory
- memory.py: dict-backed store for tests
"""

from .base import LocalPackageStore
from .filesystem import FileSystemPackageStore
from .memory import InMemoryPackageStore

__all__ = [
    "LocalPackageStore",
    "FileSystemPackageStore",
    "InMemoryPackageStore",
]
