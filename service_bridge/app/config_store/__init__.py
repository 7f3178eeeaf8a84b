"""
Persistent configuration for the bridge.

The ``configs`` table is the highest-priority settings source; lookups go
through a read-through cache and are materialized into ``BridgeSettings``.
"""

from .cache import ConfigCache
from .loader import (
    FunctionMappingEntry,
    apply_function_mappings,
    default_configs,
    fetch_function_mappings,
    gateway_config_from_settings,
    materialize_settings,
    parse_function_mappings,
)
from .postgres import ConfigStore

__all__ = [
    "ConfigCache",
    "ConfigStore",
    "FunctionMappingEntry",
    "apply_function_mappings",
    "default_configs",
    "fetch_function_mappings",
    "gateway_config_from_settings",
    "materialize_settings",
    "parse_function_mappings",
]
