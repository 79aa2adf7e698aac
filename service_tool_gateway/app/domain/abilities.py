"""
Abilities: named, schema-described operations registered by the host.

The gateway only reads the registry; the host registers abilities once at
startup. Callbacks may be plain functions (run in the thread pool) or
coroutines.
"""

import asyncio
import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from shared.logging import get_logger
from .auth_middleware import Caller


VISIBILITY_PUBLIC = "public"
VISIBILITY_PRIVATE = "private"


def allow_all(caller: Caller, input: Optional[Dict[str, Any]] = None) -> bool:
    """Permission callback that admits every caller."""
    return True


def require_authenticated(caller: Caller, input: Optional[Dict[str, Any]] = None) -> bool:
    """Permission callback that admits logged-in callers only."""
    return caller.authenticated


async def _call(callback: Callable[..., Any], *args: Any) -> Any:
    if asyncio.iscoroutinefunction(callback):
        return await callback(*args)
    result = await run_in_threadpool(functools.partial(callback, *args))
    if asyncio.iscoroutine(result):
        return await result
    return result


@dataclass
class Ability:
    """A registered operation.

    ``permission_callback(caller, input)`` must return exactly ``True`` to
    allow; ``input`` is None during discovery. ``execute_callback(input,
    caller)`` returns any JSON-serializable value or raises AbilityError.
    """

    name: str
    label: str
    description: str
    execute_callback: Callable[..., Any]
    permission_callback: Callable[..., Any] = allow_all
    input_schema: Dict[str, Any] = field(default_factory=dict)
    output_schema: Dict[str, Any] = field(default_factory=dict)
    category: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def get_meta_item(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)

    @property
    def visibility(self) -> str:
        return self.get_meta_item("visibility", VISIBILITY_PUBLIC)

    @property
    def is_private(self) -> bool:
        return self.visibility == VISIBILITY_PRIVATE

    @property
    def read_only(self) -> bool:
        return bool(self.get_meta_item("read_only", False))

    async def check_permissions(self, caller: Caller, input: Optional[Dict[str, Any]] = None) -> Any:
        return await _call(self.permission_callback, caller, input)

    async def execute(self, input: Dict[str, Any], caller: Caller) -> Any:
        return await _call(self.execute_callback, input, caller)


class AbilityRegistry:
    """In-process registry of abilities, kept in registration order."""

    def __init__(self):
        self._abilities: Dict[str, Ability] = {}
        self._revision = 0
        self.logger = get_logger("gateway.abilities")

    @property
    def revision(self) -> int:
        """Bumped on every register/unregister; used to key cached tool lists."""
        return self._revision

    def register(self, ability: Ability) -> Ability:
        if not ability.name or "/" not in ability.name:
            raise ValueError(f"Ability name must be namespaced as 'namespace/name': {ability.name!r}")
        if ability.name in self._abilities:
            raise ValueError(f"Ability already registered: {ability.name}")

        self._abilities[ability.name] = ability
        self._revision += 1
        self.logger.info("Ability registered", ability=ability.name, visibility=ability.visibility)
        return ability

    def unregister(self, name: str) -> Optional[Ability]:
        ability = self._abilities.pop(name, None)
        if ability is not None:
            self._revision += 1
            self.logger.info("Ability unregistered", ability=name)
        return ability

    def get(self, name: str) -> Optional[Ability]:
        return self._abilities.get(name)

    def has_ability(self, name: str) -> bool:
        return name in self._abilities

    def list(self) -> List[Ability]:
        return list(self._abilities.values())

    def __len__(self) -> int:
        return len(self._abilities)
