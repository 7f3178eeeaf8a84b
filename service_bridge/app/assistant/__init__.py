"""
Assistant-facing helpers: tool-call dispatch into the API gateway.
"""

from .function_calls import FunctionCallDispatcher, ToolCall, ToolOutput

__all__ = ["FunctionCallDispatcher", "ToolCall", "ToolOutput"]
