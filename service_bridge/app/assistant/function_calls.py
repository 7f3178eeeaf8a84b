"""
Assistant tool-call dispatch.

Each tool call the assistant emits names a logical function; its JSON
arguments are passed to the gateway and the result (or a tagged error) is
returned as the string output the assistant run expects.
"""

import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from shared.errors import BridgeException, ValidationError
from shared.logging import get_logger

from ..gateway.client import GatewayClient


class ToolCall(BaseModel):
    """A function call requested by the assistant."""

    id: str
    name: str
    arguments: Union[str, Dict[str, Any], None] = None


class ToolOutput(BaseModel):
    """Output submitted back to the assistant run."""

    tool_call_id: str
    output: str


def parse_tool_arguments(raw_args: Union[str, bytes, Dict[str, Any], None]) -> Dict[str, Any]:
    """Normalize tool arguments to a dict.

    Raises:
        ValidationError: arguments are not a JSON object.
    """
    if isinstance(raw_args, dict):
        return raw_args
    if raw_args is None or raw_args == "" or raw_args == b"":
        return {}
    try:
        parsed = json.loads(raw_args)
    except (TypeError, ValueError) as e:
        raise ValidationError("Tool arguments are not valid JSON", details={"error": str(e)}) from e
    if not isinstance(parsed, dict):
        raise ValidationError(
            "Tool arguments must be a JSON object",
            details={"type": type(parsed).__name__}
        )
    return parsed


def encode_output(result: Any) -> str:
    """Coerce a gateway result to a tool output string."""
    if isinstance(result, bytes):
        return result.decode("utf-8", errors="replace")
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def error_output(error: BridgeException) -> str:
    return encode_output({"error": error.code, "message": error.message})


class FunctionCallDispatcher:
    """Turns assistant tool calls into gateway invocations."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway
        self.logger = get_logger("assistant.function_calls")

    async def dispatch(self, call: ToolCall, conversation_id: Optional[str] = None) -> ToolOutput:
        """Run one tool call. Gateway errors become error outputs; the conversation goes on."""
        log = self.logger.bind(tool_call_id=call.id, function_name=call.name)
        if conversation_id:
            log = log.bind(conversation_id=conversation_id)

        try:
            args = parse_tool_arguments(call.arguments)
            log.debug("Dispatching tool call", arguments=args)
            result = await self.gateway.invoke(call.name, args)
        except BridgeException as e:
            log.warning("Tool call failed", code=e.code, error=e.message)
            return ToolOutput(tool_call_id=call.id, output=error_output(e))

        log.info("Tool call completed")
        return ToolOutput(tool_call_id=call.id, output=encode_output(result))

    async def dispatch_all(self, calls: Iterable[ToolCall], conversation_id: Optional[str] = None) -> List[ToolOutput]:
        """Run every call concurrently; outputs keep the order of ``calls``."""
        return list(await asyncio.gather(
            *(self.dispatch(call, conversation_id) for call in calls)
        ))
