"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    CONFIG_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all registry requests
    CONNECTION_LIMIT = 100  # aiohttp connector limit; 0 means unlimited
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 8080
    USER_AGENT = "depresolve/0.1"

    # Upper bound on versions listed in a "no compatible version" message
    VERSION_SUMMARY_LIMIT = 10

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

    ENV_LOG_LEVEL = "DEPRESOLVE_LOG_LEVEL"
    ENV_REGISTRY_URL = "DEPRESOLVE_REGISTRY_URL"
    ENV_TIMEOUT = "DEPRESOLVE_TIMEOUT"
