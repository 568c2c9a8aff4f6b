"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    EXIT_WARNINGS = 3
    CONFIG_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org"
    USER_AGENT = "DepSync/0.1"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for registry requests
    TARBALL_CHUNK_SIZE = 64 * 1024

    DEFAULT_MAX_DEPTH = 10
    DEFAULT_CONCURRENCY = 5
    MIN_CONCURRENCY = 1
    MAX_CONCURRENCY = 50

    # requiredBy markers for seed targets
    REQUIRED_BY_LOCAL_CACHE = "local-cache"
    REQUIRED_BY_UPDATE = "update-to-latest"
    REQUIRED_BY_SIBLINGS = "complete-sibling-versions"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

    ENV_LOG_LEVEL = "DEPSYNC_LOG_LEVEL"
    ENV_REGISTRY_URL = "DEPSYNC_REGISTRY_URL"
    ENV_STORAGE = "DEPSYNC_STORAGE"
