"""
Extension points for the gateway.

Handlers are registered once at startup and invoked synchronously, in
registration order. Filters receive the current value and return the value
passed to the next filter.
"""

from typing import Any, Callable, Dict, List, Optional

from shared.errors import ExecutionVetoedError
from shared.logging import get_logger


ToolDefinitionFilter = Callable[[Dict[str, Any], str, Any], Dict[str, Any]]
ExposeFilter = Callable[[bool, str, Any], bool]
ExecutionGuard = Callable[[str, Dict[str, Any], str], Optional[ExecutionVetoedError]]
ExecutionListener = Callable[[str, str, bool], None]
DiscoveryAuthFilter = Callable[[bool], bool]


class GatewayHooks:
    """Typed handler lists for tool customization, vetoes and observability."""

    def __init__(self):
        self.tool_definition_filters: List[ToolDefinitionFilter] = []
        self.expose_filters: List[ExposeFilter] = []
        self.execution_guards: List[ExecutionGuard] = []
        self.execution_listeners: List[ExecutionListener] = []
        self.discovery_auth_filters: List[DiscoveryAuthFilter] = []
        self.logger = get_logger("gateway.hooks")

    def add_tool_definition_filter(self, handler: ToolDefinitionFilter) -> ToolDefinitionFilter:
        self.tool_definition_filters.append(handler)
        return handler

    def add_expose_filter(self, handler: ExposeFilter) -> ExposeFilter:
        self.expose_filters.append(handler)
        return handler

    def add_execution_guard(self, handler: ExecutionGuard) -> ExecutionGuard:
        self.execution_guards.append(handler)
        return handler

    def add_execution_listener(self, handler: ExecutionListener) -> ExecutionListener:
        self.execution_listeners.append(handler)
        return handler

    def add_discovery_auth_filter(self, handler: DiscoveryAuthFilter) -> DiscoveryAuthFilter:
        self.discovery_auth_filters.append(handler)
        return handler

    def customize_tool_definition(self, tool: Dict[str, Any], name: str, ability: Any) -> Dict[str, Any]:
        for handler in self.tool_definition_filters:
            tool = handler(tool, name, ability)
        return tool

    def should_expose(self, name: str, ability: Any) -> bool:
        expose = True
        for handler in self.expose_filters:
            expose = bool(handler(expose, name, ability))
        return expose

    def check_execution(self, name: str, input: Dict[str, Any], user_id: str) -> None:
        """Run execution guards; the first veto is raised as ExecutionVetoedError."""
        for handler in self.execution_guards:
            veto = handler(name, input, user_id)
            if isinstance(veto, ExecutionVetoedError):
                raise veto

    def tool_executed(self, name: str, user_id: str, success: bool) -> None:
        for handler in self.execution_listeners:
            try:
                handler(name, user_id, success)
            except Exception as e:
                self.logger.error(
                    "Execution listener failed",
                    tool=name,
                    listener=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

    def discovery_requires_auth(self, require_auth: bool) -> bool:
        for handler in self.discovery_auth_filters:
            require_auth = bool(handler(require_auth))
        return require_auth
