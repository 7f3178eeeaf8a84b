"""
Endpoint registry: logical function name -> (path template, HTTP method).
"""

import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

from shared.errors import MissingPathParameter, UnknownFunction, ValidationError
from shared.logging import get_logger


# {order_id} or :order_id
PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}|:([A-Za-z_][A-Za-z0-9_]*)")


class HttpMethod(str, Enum):
    """HTTP methods a logical function can be mapped to."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @property
    def is_write(self) -> bool:
        return self is not HttpMethod.GET

    @classmethod
    def parse(cls, value: Any) -> "HttpMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                f"Unsupported HTTP method: {value!r}",
                details={"allowed": [m.value for m in cls]}
            )


@dataclass(frozen=True)
class EndpointMapping:
    """A registered route for one logical function."""

    function_name: str
    path_template: str
    method: HttpMethod = HttpMethod.POST
    cacheable: Optional[bool] = None

    @property
    def placeholders(self) -> List[str]:
        return [a or b for a, b in PLACEHOLDER_PATTERN.findall(self.path_template)]

    @property
    def is_cacheable(self) -> bool:
        """Only GET mappings are cacheable; ``cacheable=False`` opts a GET out."""
        if self.method.is_write:
            return False
        return self.cacheable is not False


@dataclass(frozen=True)
class ResolvedRoute:
    """A mapping with its placeholders filled in."""

    mapping: EndpointMapping
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


class EndpointRegistry:
    """Runtime-mutable routing table shared by every gateway call."""

    def __init__(self):
        self.logger = get_logger("gateway.registry")
        self._mappings: Dict[str, EndpointMapping] = {}
        self._lock = threading.RLock()

    def add_endpoint_mapping(
        self,
        function_name: str,
        path_template: str,
        method: Any = HttpMethod.POST,
        cacheable: Optional[bool] = None,
    ) -> EndpointMapping:
        """Register or overwrite (last write wins) the mapping for ``function_name``."""
        if not isinstance(function_name, str) or not function_name.strip():
            raise ValidationError("function_name must be a non-empty string")
        if not isinstance(path_template, str) or not path_template.strip():
            raise ValidationError(
                "path_template must be a non-empty string",
                details={"function_name": function_name}
            )

        mapping = EndpointMapping(
            function_name=function_name.strip(),
            path_template=path_template.strip(),
            method=HttpMethod.parse(method),
            cacheable=cacheable,
        )
        if mapping.method.is_write and cacheable:
            self.logger.warning(
                "Write method mappings are never cached",
                function_name=mapping.function_name,
                method=mapping.method.value
            )

        with self._lock:
            previous = self._mappings.get(mapping.function_name)
            self._mappings[mapping.function_name] = mapping

        self.logger.debug(
            "Endpoint mapping registered",
            function_name=mapping.function_name,
            path=mapping.path_template,
            method=mapping.method.value,
            replaced=previous is not None
        )
        return mapping

    def resolve(self, function_name: str) -> EndpointMapping:
        with self._lock:
            mapping = self._mappings.get(function_name)
        if mapping is None:
            raise UnknownFunction(function_name)
        return mapping

    def remove(self, function_name: str) -> bool:
        with self._lock:
            return self._mappings.pop(function_name, None) is not None

    def mappings(self) -> List[EndpointMapping]:
        """Snapshot of every registered mapping."""
        with self._lock:
            return list(self._mappings.values())

    def __contains__(self, function_name: object) -> bool:
        with self._lock:
            return function_name in self._mappings

    def __len__(self) -> int:
        with self._lock:
            return len(self._mappings)

    def build_route(self, mapping: EndpointMapping, args: Optional[Mapping[str, Any]] = None) -> ResolvedRoute:
        """Substitute path placeholders; leftover arguments become query (GET) or body."""
        args = dict(args or {})
        path, used = substitute_path(mapping, args)
        remaining = {k: v for k, v in args.items() if k not in used}

        if mapping.method.is_write:
            return ResolvedRoute(mapping=mapping, path=path, body=remaining)
        return ResolvedRoute(mapping=mapping, path=path, query=to_query_params(remaining))


def substitute_path(mapping: EndpointMapping, args: Mapping[str, Any]) -> Tuple[str, set]:
    """Fill ``{name}`` / ``:name`` placeholders from ``args`` (URL-encoded)."""
    used = set()

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        value = args.get(name)
        if value is None:
            raise MissingPathParameter(mapping.function_name, name, mapping.path_template)
        used.add(name)
        return quote(_stringify(value), safe="")

    return PLACEHOLDER_PATTERN.sub(replace, mapping.path_template), used


def to_query_params(values: Mapping[str, Any]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            params[key] = [_stringify(v) for v in value]
        else:
            params[key] = _stringify(value)
    return params


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
