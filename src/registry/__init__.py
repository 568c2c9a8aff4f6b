"""Registry clients.

- base.py: RegistryClient interface and spec helpers
- npm.py: aiohttp client for npm-compatible registries
- memory.py: in-memory registry for tests and dry runs
"""

from .base import RegistryClient, parse_package_spec
from .memory import InMemoryRegistryClient
from .npm import NpmRegistryClient

__all__ = [
    "RegistryClient",
    "parse_package_spec",
    "InMemoryRegistryClient",
    "NpmRegistryClient",
]
