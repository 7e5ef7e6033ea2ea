"""Helpers shared by the resource handlers."""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from fastmcp.exceptions import ResourceError

from ..database.repository import NotFoundError, RepositoryException

logger = logging.getLogger(__name__)

JSON = "application/json"


def parse_id(value: str | int, label: str) -> int:
    """URI parameters arrive as text; ids must be positive integers."""
    try:
        parsed = int(value)
    except (TypeError, ValueError) as e:
        raise ResourceError(f"Invalid {label}: {value!r}") from e
    if parsed < 1:
        raise ResourceError(f"Invalid {label}: {value!r}")
    return parsed


@contextmanager
def resource_errors(what: str) -> Generator[None, None, None]:
    """Turn anything raised while reading a resource into a ResourceError."""
    try:
        yield
    except ResourceError:
        raise
    except NotFoundError as e:
        logger.info("%s: %s", what, e)
        raise ResourceError(str(e)) from e
    except (RepositoryException, ValueError) as e:
        logger.warning("Error reading %s: %s", what, e)
        raise ResourceError(f"Failed to retrieve {what}: {e!s}") from e
    except Exception as e:
        logger.exception("Error in %s resource", what)
        raise ResourceError(f"Failed to retrieve {what}: {e!s}") from e
