"""Execution strategies for routed actions.

A routed action is a catalogue entry with an HTTP method and a route
template such as ``sessions/[id]``. ``NetworkStrategy`` calls the route
over HTTP; ``DirectStrategy`` calls a registered in-process handler for
the same route and falls back to the network when none is registered.
"""

import inspect
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import httpx
import structlog

from core.constants import ExecutionMode
from core.exceptions import ActionError
from workflow.expressions import to_display_string

logger = structlog.get_logger(__name__)

ROUTE_PARAM_PATTERN = re.compile(r"\[(\w+)\]")
BODY_METHODS = ("POST", "PUT", "PATCH")
DEFAULT_BASE_URL = "http://localhost:8000"

ActionOutput = Union[Dict[str, Any], List[Any]]


@dataclass(frozen=True)
class ActionRoute:
    """Where a routed action is served."""

    route: str
    method: str
    module: str = ""


@dataclass
class PreparedRequest:
    """Route template filled in from an action's input."""

    path: str
    method: str
    query: Dict[str, str]
    body: Optional[Dict[str, Any]]
    route_params: Dict[str, str]


def build_request(action: ActionRoute, input: Mapping[str, Any]) -> PreparedRequest:
    """Substitute ``[param]`` placeholders and split the remaining input.

    Leftover inputs become query parameters for GET/DELETE and the JSON
    body for POST/PUT/PATCH. Placeholders without a matching input stay
    in the path untouched.
    """
    method = action.method.upper()
    path = action.route
    route_params: Dict[str, str] = {}

    for match in ROUTE_PARAM_PATTERN.finditer(action.route):
        name = match.group(1)
        if input.get(name) is not None:
            route_params[name] = to_display_string(input[name])
            path = path.replace(match.group(0), route_params[name], 1)

    if method in BODY_METHODS:
        body = {k: v for k, v in input.items() if k not in route_params and v is not None}
        return PreparedRequest(path, method, {}, body, route_params)

    query = {
        k: to_display_string(v)
        for k, v in input.items()
        if k not in route_params and v is not None
    }
    return PreparedRequest(path, method, query, None, route_params)


def api_url(base_url: str, path: str) -> httpx.URL:
    """``/api/<path>`` resolved against the base URL's origin."""
    return httpx.URL(base_url).join(f"/api/{path}")


def normalize_output(data: Any) -> ActionOutput:
    """Objects and arrays pass through; anything else is wrapped."""
    if isinstance(data, (dict, list)):
        return data
    return {"result": data}


class ExecutionStrategy(ABC):
    """Transport that performs routed action calls."""

    mode: ExecutionMode

    @abstractmethod
    async def execute_api_call(self, action: ActionRoute, input: Mapping[str, Any]) -> ActionOutput:
        """Invoke ``action`` with ``input`` and return its JSON output.

        Raises:
            ActionError: If the call fails or returns a non-success status
        """


class NetworkStrategy(ExecutionStrategy):
    """Calls routed actions over HTTP with httpx."""

    mode = ExecutionMode.NETWORK

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url or DEFAULT_BASE_URL
        self.client = client
        self.timeout = timeout

    async def execute_api_call(self, action: ActionRoute, input: Mapping[str, Any]) -> ActionOutput:
        prepared = build_request(action, input)
        url = api_url(self.base_url, prepared.path)

        logger.debug("Network action call", method=prepared.method, url=str(url), module=action.module)

        try:
            if self.client is not None:
                response = await self._send(self.client, prepared, url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._send(client, prepared, url)
        except httpx.HTTPError as e:
            raise ActionError(f"API call failed: {e}") from e

        if not response.is_success:
            raise ActionError(
                f"API call failed ({response.status_code}): {response.text}",
                response_status=response.status_code,
                response_body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ActionError(
                f"API call returned invalid JSON ({response.status_code})",
                response_status=response.status_code,
                response_body=response.text,
            ) from e
        return normalize_output(data)

    @staticmethod
    async def _send(client: httpx.AsyncClient, prepared: PreparedRequest, url: httpx.URL) -> httpx.Response:
        return await client.request(
            prepared.method,
            url,
            params=prepared.query or None,
            json=prepared.body,
            headers={"Content-Type": "application/json"},
        )


@dataclass
class DirectRequest:
    """Request object handed to an in-process handler."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    query: Dict[str, str] = field(default_factory=dict)
    route_params: Dict[str, str] = field(default_factory=dict)


@dataclass
class DirectResponse:
    """Response returned by an in-process handler."""

    status: int = 200
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, default=str)


DirectHandler = Callable[[DirectRequest], Union[Awaitable[DirectResponse], DirectResponse]]


class DirectStrategy(ExecutionStrategy):
    """Calls registered in-process handlers keyed by ``METHOD:route``.

    Routes with no registered handler go through ``fallback``.
    """

    mode = ExecutionMode.DIRECT

    def __init__(
        self,
        handlers: Mapping[str, DirectHandler],
        fallback: Optional[ExecutionStrategy] = None,
        base_url: Optional[str] = None,
    ):
        self.handlers = dict(handlers)
        self.base_url = base_url or DEFAULT_BASE_URL
        self.fallback = fallback or NetworkStrategy(self.base_url)

    @staticmethod
    def handler_key(method: str, route: str) -> str:
        return f"{method.upper()}:{route}"

    @classmethod
    def from_api_handlers(
        cls,
        api_handlers: Mapping[str, Mapping[str, DirectHandler]],
        **kwargs: Any,
    ) -> "DirectStrategy":
        """Build from ``{route: {METHOD: handler}}``."""
        handlers = {
            cls.handler_key(method, route): handler
            for route, methods in api_handlers.items()
            for method, handler in methods.items()
        }
        return cls(handlers, **kwargs)

    async def execute_api_call(self, action: ActionRoute, input: Mapping[str, Any]) -> ActionOutput:
        handler = self.handlers.get(self.handler_key(action.method, action.route))
        if handler is None:
            logger.debug("No direct handler, falling back", route=action.route, method=action.method)
            return await self.fallback.execute_api_call(action, input)

        prepared = build_request(action, input)
        url = api_url(self.base_url, prepared.path).copy_merge_params(prepared.query)
        request = DirectRequest(
            method=prepared.method,
            url=str(url),
            headers={"Content-Type": "application/json"},
            body=prepared.body,
            query=prepared.query,
            route_params=prepared.route_params,
        )

        response = handler(request)
        if inspect.isawaitable(response):
            response = await response

        if not response.ok:
            raise ActionError(
                f"Direct handler call failed ({response.status}): {response.text}",
                response_status=response.status,
                response_body=response.text,
            )
        return normalize_output(response.body)


def create_strategy(
    mode: Union[ExecutionMode, str] = ExecutionMode.NETWORK,
    base_url: Optional[str] = None,
    handlers: Optional[Mapping[str, Mapping[str, DirectHandler]]] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> ExecutionStrategy:
    """Direct when asked for and handlers are supplied, network otherwise."""
    network = NetworkStrategy(base_url, client=client, timeout=timeout)
    if ExecutionMode(mode) == ExecutionMode.DIRECT and handlers:
        return DirectStrategy.from_api_handlers(handlers, fallback=network, base_url=base_url)
    return network

