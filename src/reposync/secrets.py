import logging
from collections.abc import Callable

import requests

from .constants import APP_NAME, METADATA_PREFIX
from .errors import SecretResolutionError

logger = logging.getLogger(APP_NAME)

METADATA_URL = (
    "http://metadata.google.internal/computeMetadata/v1/project/attributes/{key}"
)
METADATA_TIMEOUT = 5


def fetch_project_attribute(key: str) -> str:
    """Reads a project attribute from the GCE metadata server.

    Args:
        key (str): The attribute name.

    Returns:
        str: The attribute value.

    Raises:
        SecretResolutionError: If the server is unreachable or the key is unknown.
    """
    try:
        response = requests.get(
            METADATA_URL.format(key=key),
            headers={"Metadata-Flavor": "Google"},
            timeout=METADATA_TIMEOUT,
        )
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise SecretResolutionError(
            f"Could not get project metadata value {key!r}: {e}"
        ) from e
    return response.text


def resolve(value: str, fetch: Callable[[str], str] = fetch_project_attribute) -> str:
    """Resolves a configuration value that may point at the metadata server.

    Values prefixed with ``metadata:`` are replaced by the project attribute of
    that name; everything else is returned unchanged.

    Args:
        value (str): The raw configuration value.
        fetch (Callable[[str], str], optional): Attribute lookup. Defaults to
            the GCE metadata server.

    Returns:
        str: The concrete value.

    Raises:
        SecretResolutionError: If the lookup fails.
    """
    if not value.startswith(METADATA_PREFIX):
        return value
    key = value[len(METADATA_PREFIX) :]
    if not key:
        raise SecretResolutionError(f"Empty metadata key in {value!r}")
    logger.debug(f"Resolving metadata attribute {key!r}")
    return fetch(key)
