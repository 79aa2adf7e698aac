"""
Domain utilities for the Tool Gateway Service.

Holds the collaborators the gateway reads on every request: the abilities
registry, administrator settings, extension hooks, caller resolution and
CSRF nonces.
"""

from .abilities import Ability, AbilityRegistry, allow_all, require_authenticated
from .auth_middleware import AuthMiddleware, Caller
from .csrf import EXECUTE_ACTION, NonceManager
from .hooks import GatewayHooks
from .settings_store import GatewaySettings, SettingsStore

__all__ = [
    "Ability",
    "AbilityRegistry",
    "AuthMiddleware",
    "Caller",
    "EXECUTE_ACTION",
    "GatewayHooks",
    "GatewaySettings",
    "NonceManager",
    "SettingsStore",
    "allow_all",
    "require_authenticated",
]
