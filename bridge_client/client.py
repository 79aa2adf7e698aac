"""
HTTP client for the tool gateway.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from .cache import ToolsCache


DEFAULT_NONCE_HEADER = "X-WebMCP-Nonce"


def safe_tool_name(name: str) -> str:
    """Agent runtimes reject "/" in tool names; the original name is kept for execution."""
    return name.replace("/", "_")


class ModelContext(Protocol):
    """Agent runtime that receives the tool set. Each call replaces the previous set."""

    def provide_context(self, context: Dict[str, Any]) -> Any:
        ...


class BridgeClientError(Exception):
    """Execution failed; carries the gateway's status and error code."""

    def __init__(self, status: int, code: str, message: str):
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"Tool gateway error {status} ({code}): {message}")


class BridgeClient:
    """Client for discovering and executing gateway tools."""

    def __init__(
        self,
        tools_endpoint: str,
        execute_endpoint: str,
        nonce_endpoint: str,
        *,
        nonce: Optional[str] = None,
        cache: Optional[ToolsCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        nonce_header: str = DEFAULT_NONCE_HEADER,
        timeout: float = 10.0,
    ):
        self.tools_endpoint = tools_endpoint
        self.execute_endpoint = execute_endpoint if execute_endpoint.endswith("/") else execute_endpoint + "/"
        self.nonce_endpoint = nonce_endpoint
        self.nonce = nonce
        self.cache = cache if cache is not None else ToolsCache()
        self.nonce_header = nonce_header
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger("bridge_client")

    async def __aenter__(self) -> "BridgeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def fetch_tools(self) -> List[Dict[str, Any]]:
        """Return the current tool list, revalidating the cached copy by ETag.

        Network errors and non-2xx responses fall back to the cached list.
        The discovery request never carries a CSRF token.
        """
        cached = self.cache.get()
        fallback = cached.tools if cached else []

        headers = {}
        if cached and cached.etag:
            headers["If-None-Match"] = f'"{cached.etag}"'

        try:
            response = await self.http_client.get(self.tools_endpoint, headers=headers)
        except httpx.HTTPError as e:
            self.logger.warning("Tool discovery failed; using cached tools", error=str(e))
            return fallback

        if response.status_code == 304 and cached:
            return cached.tools

        if not response.is_success:
            self.logger.warning("Tool discovery rejected", status_code=response.status_code)
            return fallback

        try:
            data = response.json()
        except ValueError:
            self.logger.warning("Tool discovery returned invalid JSON")
            return fallback

        tools = data.get("tools") or []
        etag = response.headers.get("ETag", "").replace('"', "")
        if data.get("nonce"):
            self.nonce = data["nonce"]

        self.cache.set(tools, etag)
        return tools

    async def refresh_nonce(self) -> Optional[str]:
        """Fetch a fresh CSRF token; failures keep the current one."""
        try:
            response = await self.http_client.get(self.nonce_endpoint)
        except httpx.HTTPError as e:
            self.logger.warning("Nonce refresh failed", error=str(e))
            return self.nonce

        if response.is_success:
            try:
                self.nonce = response.json().get("nonce") or self.nonce
            except ValueError:
                self.logger.warning("Nonce refresh returned invalid JSON")
        return self.nonce

    async def _post_execute(self, url: str, body: str, read_only: bool) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if not read_only and self.nonce:
            headers[self.nonce_header] = self.nonce
        return await self.http_client.post(url, content=body, headers=headers)

    async def execute_tool(
        self,
        name: str,
        input: Optional[Dict[str, Any]] = None,
        read_only: bool = False,
    ) -> Dict[str, Any]:
        """Execute a tool and wrap its result in the MCP content-array format.

        A 403 on a non-read-only tool triggers one nonce refresh and retry.
        """
        url = self.execute_endpoint + quote(name, safe="")
        body = json.dumps(input if input is not None else {})

        response = await self._post_execute(url, body, read_only)
        if not read_only and response.status_code == 403:
            await self.refresh_nonce()
            response = await self._post_execute(url, body, read_only)

        if not response.is_success:
            code, message = "HTTP_ERROR", f"HTTP {response.status_code}"
            try:
                error = response.json()
            except ValueError:
                error = None
            if isinstance(error, dict):
                code = error.get("code", code)
                message = error.get("message", message)
            self.logger.warning("Tool execution failed", tool=name, status_code=response.status_code, code=code)
            raise BridgeClientError(response.status_code, code, message)

        result = response.json().get("result")
        return {"content": [{"type": "text", "text": json.dumps(result)}]}

    def _make_executor(self, name: str, read_only: bool) -> Callable[..., Awaitable[Dict[str, Any]]]:
        async def execute(input: Optional[Dict[str, Any]] = None, client: Any = None) -> Dict[str, Any]:
            return await self.execute_tool(name, input, read_only)

        return execute

    async def register_tools(self, model_context: ModelContext) -> int:
        """Fetch tools and hand the complete set to model_context; returns how many."""
        tools = await self.fetch_tools()

        entries = []
        for tool in tools:
            if not isinstance(tool, dict) or not tool.get("name") or not tool.get("description"):
                continue

            annotations = tool.get("annotations")
            read_only = bool(annotations and annotations.get("readOnlyHint"))
            entry = {
                "name": safe_tool_name(tool["name"]),
                "description": tool["description"],
                "inputSchema": tool.get("inputSchema") or {"type": "object", "properties": {}},
                "execute": self._make_executor(tool["name"], read_only),
            }
            if annotations:
                entry["annotations"] = annotations
            entries.append(entry)

        if not entries:
            return 0

        model_context.provide_context({"tools": entries})
        self.logger.info("Tools registered", tools_count=len(entries))
        return len(entries)
