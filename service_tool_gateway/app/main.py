"""
Tool Gateway service for the Ability Tool Gateway.

Exposes registered abilities to AI agents as discoverable, rate-limited
tools:

- GET  {prefix}/tools               discovery (ETag aware)
- POST {prefix}/execute/{tool_name} execution
- GET  {prefix}/nonce               CSRF token refresh
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import GatewayConfig
from shared.errors import (
    AuthenticationRequiredError,
    ExecutionFaultError,
    ExecutionVetoedError,
    GatewayDisabledError,
    GatewayError,
    InvalidInputError,
    InvalidNonceError,
    PayloadTooLargeError,
    PermissionDeniedError,
    RateLimitError,
    ToolNotFoundError,
)
from shared.logging import set_tool_context
from .bridge import AbilityBridge
from .caching import CacheManager, KeyValueStore, create_store
from .domain import (
    EXECUTE_ACTION,
    Ability,
    AbilityRegistry,
    AuthMiddleware,
    Caller,
    GatewayHooks,
    GatewaySettings,
    NonceManager,
    SettingsStore,
)
from .ratelimit import FixedWindowRateLimiter, RateLimitPolicy


class GatewayService(BaseService):
    """Tool gateway service implementation.

    This is the composition root: every collaborator is built once here and
    handed to the components that need it. Tests and hosts may inject their
    own registry, store or hooks.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        *,
        registry: Optional[AbilityRegistry] = None,
        store: Optional[KeyValueStore] = None,
        hooks: Optional[GatewayHooks] = None,
    ):
        config = config or GatewayConfig()
        super().__init__(config.service_name, config.port, config)

        self.registry = registry if registry is not None else AbilityRegistry()
        self.store = store if store is not None else create_store(self.config.redis_url)
        self.hooks = hooks if hooks is not None else GatewayHooks()

        self.settings_store = SettingsStore(
            self.store,
            GatewaySettings(
                enabled=self.config.enabled_default,
                discovery_public=self.config.discovery_public_default,
                exposed_tools=self.config.exposed_tools_default,
            ),
        )
        self.cache_manager = CacheManager(
            self.store,
            metrics=self.metrics,
            tools_ttl=self.config.tools_cache_ttl_seconds,
        )
        self.rate_limiter = FixedWindowRateLimiter(
            self.store,
            RateLimitPolicy.from_config(self.config),
            metrics=self.metrics,
        )
        self.bridge = AbilityBridge(
            self.registry,
            self.settings_store,
            self.cache_manager,
            self.hooks,
            metrics=self.metrics,
        )
        self.auth_middleware = AuthMiddleware(
            self.config.session_secret.get_secret_value(),
            api_keys=self.config.api_keys,
            session_cookie=self.config.session_cookie,
        )
        self.nonce_manager = NonceManager(
            self.config.nonce_secret.get_secret_value(),
            ttl_seconds=self.config.nonce_ttl_seconds,
        )

        self.settings_store.add_listener(self._on_settings_changed)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.close()

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_gateway_routes(self):
        """Set up discovery, execution and nonce routes."""
        prefix = self.config.api_prefix.rstrip("/")

        @self.app.get(f"{prefix}/tools")
        async def list_tools(request: Request):
            """Discover the tools available to the caller."""
            settings = await self.settings_store.get()
            if not settings.enabled:
                raise GatewayDisabledError()

            client_ip = self._get_client_ip(request)
            if not await self.rate_limiter.check_discovery(client_ip):
                raise RateLimitError()

            caller = await self.auth_middleware.authenticate_request(request)
            require_auth = self.hooks.discovery_requires_auth(not settings.discovery_public)
            if require_auth and not caller.authenticated:
                raise AuthenticationRequiredError()

            tools = await self.bridge.list_tools_for_caller(caller)
            etag = self.bridge.etag_for(tools)

            headers = {
                "Cache-Control": f"private, max-age={self.config.discovery_max_age_seconds}",
                "Vary": "Cookie, Authorization, X-API-Key",
                "ETag": f'"{etag}"',
            }

            if self._etag_matches(request.headers.get("If-None-Match"), etag):
                return Response(status_code=304, headers=headers)

            return JSONResponse(
                content={
                    "tools": tools,
                    "nonce": self.nonce_manager.create_nonce(EXECUTE_ACTION, caller),
                },
                headers=headers,
            )

        @self.app.post(prefix + "/execute/{tool_name:path}")
        async def execute_tool(tool_name: str, request: Request):
            """Execute a tool on behalf of the caller."""
            return await self._execute(tool_name, request)

        @self.app.get(f"{prefix}/nonce")
        async def get_nonce(request: Request):
            """Issue a fresh CSRF token for tool execution."""
            caller = await self.auth_middleware.authenticate_request(request)
            return {"nonce": self.nonce_manager.create_nonce(EXECUTE_ACTION, caller)}

    async def _execute(self, tool_name: str, request: Request) -> Dict[str, Any]:
        settings = await self.settings_store.get()
        if not settings.enabled:
            raise GatewayDisabledError()

        body = await request.body()
        if len(body) > self.config.max_input_bytes:
            raise PayloadTooLargeError(self.config.max_input_bytes)

        ability = self._get_exposed_ability(tool_name, settings)
        set_tool_context(ability.name)
        input = self._parse_input(body)
        caller = await self.auth_middleware.authenticate_request(request)

        try:
            permission = await ability.check_permissions(caller, input)
        except Exception as e:
            self.logger.warning("Permission check failed", tool=tool_name, error=str(e))
            permission = False
        if permission is not True:
            raise PermissionDeniedError()

        if caller.authenticated and not ability.read_only:
            token = request.headers.get(self.config.nonce_header, "")
            if not self.nonce_manager.verify_nonce(token, EXECUTE_ACTION, caller):
                raise InvalidNonceError()

        try:
            self.hooks.check_execution(tool_name, input, caller.user_id)
        except ExecutionVetoedError as e:
            self.logger.warning("Tool execution vetoed", tool=tool_name, user_id=caller.user_id, code=e.code)
            raise

        subject = caller.user_id if caller.authenticated else f"ip:{self._get_client_ip(request)}"
        if not await self.rate_limiter.check_execution(subject, tool_name):
            raise RateLimitError(
                "Rate limit exceeded. Please wait before making more requests.",
                retry_after=self.rate_limiter.policy.window_seconds,
            )

        result = await self._run_ability(ability, input, caller)
        return {"result": result}

    def _get_exposed_ability(self, tool_name: str, settings: GatewaySettings) -> Ability:
        # Unknown, private and non-allow-listed tools must be indistinguishable.
        ability = self.registry.get(tool_name)
        if ability is None or ability.is_private or not settings.is_tool_exposed(tool_name):
            raise ToolNotFoundError()
        return ability

    def _parse_input(self, body: bytes) -> Dict[str, Any]:
        if not body.strip():
            return {}
        try:
            input = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidInputError("Request body is not valid JSON.") from exc
        if not isinstance(input, dict):
            raise InvalidInputError()
        return input

    async def _run_ability(self, ability: Ability, input: Dict[str, Any], caller: Caller) -> Any:
        """Execute ability, map its failures and report the outcome to listeners."""
        start_time = time.time()
        outcome = "error"
        try:
            result = await asyncio.wait_for(
                ability.execute(input, caller),
                timeout=self.config.execution_timeout_seconds,
            )
            outcome = "success"
        except GatewayError as e:
            self.logger.info("Tool returned an error", tool=ability.name, user_id=caller.user_id, code=e.code)
            self.hooks.tool_executed(ability.name, caller.user_id, False)
            raise
        except asyncio.TimeoutError:
            outcome = "timeout"
            self.logger.error(
                "Tool execution timed out",
                tool=ability.name,
                user_id=caller.user_id,
                timeout_seconds=self.config.execution_timeout_seconds,
            )
            self.hooks.tool_executed(ability.name, caller.user_id, False)
            raise ExecutionFaultError() from None
        except Exception as e:
            outcome = "fault"
            self.logger.error("Tool execution failed", tool=ability.name, user_id=caller.user_id, error=str(e), exc_info=True)
            self.hooks.tool_executed(ability.name, caller.user_id, False)
            raise ExecutionFaultError() from None
        finally:
            self.metrics.increment_counter("tool_executions_total", tool=ability.name, outcome=outcome)
            self.metrics.observe_histogram(
                "tool_execution_duration_seconds", time.time() - start_time, tool=ability.name
            )

        self.logger.info("Tool executed", tool=ability.name, user_id=caller.user_id, success=True)
        self.hooks.tool_executed(ability.name, caller.user_id, True)
        return result

    @staticmethod
    def _etag_matches(header: Optional[str], etag: str) -> bool:
        if not header:
            return False
        for candidate in header.split(","):
            candidate = candidate.strip()
            if candidate == "*":
                return True
            if candidate.startswith("W/"):
                candidate = candidate[2:]
            if candidate.strip('"') == etag:
                return True
        return False

    def _get_client_ip(self, request: Request) -> str:
        """Extract the caller IP; proxy headers are honored only when trusted."""
        if self.config.trust_proxy_headers:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()
            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip
        if request.client:
            return request.client.host
        return "0.0.0.0"

    async def _on_settings_changed(self, settings: GatewaySettings) -> None:
        await self.bridge.invalidate_cache()

    async def purge_state(self) -> Dict[str, int]:
        """Remove persisted settings, rate counters and cached tool lists."""
        await self.settings_store.purge()
        counters = await self.rate_limiter.purge()
        cached = await self.bridge.invalidate_cache()
        self.logger.info("Gateway state purged", counters=counters, cached_tool_lists=cached)
        return {"rate_counters": counters, "cached_tool_lists": cached}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check the shared store."""
        try:
            reachable = await self.store.ping()
        except Exception as e:
            self.logger.warning("Store health check failed", error=str(e))
            reachable = False
        return {"store": "ok" if reachable else "error"}


def create_app():
    """Create FastAPI application."""
    service = GatewayService()
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
