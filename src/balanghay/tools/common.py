"""
Response envelope and error mapping shared by every tool handler.

Every tool answers with the same envelope:

    {"success": bool, "message": str, "data": ... | None}

Handlers raise; ``tool_handler`` turns what they raise into that envelope:

- pydantic ValidationError: invalid arguments (logged at WARNING)
- repository errors and undecodable payloads: business failures (INFO)
- anything else: unexpected, logged with traceback, generic message

``LibraryTool`` is how the server registers a tool definition with FastMCP.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastmcp.tools import Tool, ToolResult
from pydantic import BaseModel, ValidationError
from pydantic.json_schema import SkipJsonSchema

from ..database.repository import RepositoryException
from ..receipts import PayloadDecodeError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


def _to_data(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_to_data(item) for item in data]
    if isinstance(data, dict):
        return {key: _to_data(value) for key, value in data.items()}
    return data


def tool_response(success: bool, message: str, data: Any = None) -> dict[str, Any]:
    return {"success": success, "message": message, "data": _to_data(data)}


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def tool_handler(tool_name: str) -> Callable[[ToolHandler], ToolHandler]:
    """Wrap a handler so that nothing it raises escapes to the transport."""

    def decorator(func: ToolHandler) -> ToolHandler:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any] | None = None) -> dict[str, Any]:
            try:
                return await func(arguments or {})
            except ValidationError as e:
                logger.warning("Invalid %s parameters: %s", tool_name, e)
                return tool_response(False, f"Invalid parameters: {_describe_validation_error(e)}")
            except (RepositoryException, PayloadDecodeError) as e:
                logger.info("%s failed: %s", tool_name, e)
                return tool_response(False, str(e))
            except Exception:
                logger.exception("Unexpected error in %s tool", tool_name)
                return tool_response(False, f"{tool_name} failed due to an internal error")

        return wrapper

    return decorator


class LibraryTool(Tool):
    """
    A tool advertised with its arguments model's JSON schema.

    Clients send the model's fields flat (``{"member_id": 1, ...}``) and the
    whole argument object reaches the handler, which validates it itself.
    """

    handler: SkipJsonSchema[ToolHandler]

    @classmethod
    def from_definition(cls, definition: dict[str, Any]) -> "LibraryTool":
        return cls(
            name=definition["name"],
            description=definition["description"],
            parameters=definition["inputSchema"],
            handler=definition["handler"],
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        return self.convert_result(await self.handler(arguments))
