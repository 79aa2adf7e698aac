"""
Unit tests for ability registration and the ability to tool bridge.
"""

import pytest

from service_tool_gateway.app.bridge import AbilityBridge, strip_tags
from service_tool_gateway.app.caching import CacheManager, InMemoryKeyValueStore
from service_tool_gateway.app.domain import (
    Ability,
    AbilityRegistry,
    Caller,
    GatewayHooks,
    SettingsStore,
    require_authenticated,
)
from shared.errors import ExecutionVetoedError


ANONYMOUS = Caller.anonymous()
MEMBER = Caller(user_id="7", authenticated=True, auth_method="bearer", session_id="s1")


def _echo(input, caller):
    return input


def make_ability(name, **kwargs):
    kwargs.setdefault("label", name)
    kwargs.setdefault("description", f"{name} description")
    kwargs.setdefault("execute_callback", _echo)
    return Ability(name=name, **kwargs)


class TestAbilityRegistry:
    """Test cases for AbilityRegistry."""

    def test_register_and_lookup(self):
        registry = AbilityRegistry()
        registry.register(make_ability("demo/a"))
        registry.register(make_ability("demo/b"))

        assert registry.has_ability("demo/a")
        assert registry.get("demo/missing") is None
        assert [ability.name for ability in registry.list()] == ["demo/a", "demo/b"]
        assert len(registry) == 2

    def test_name_must_be_namespaced(self):
        with pytest.raises(ValueError):
            AbilityRegistry().register(make_ability("plain"))

    def test_duplicate_rejected(self):
        registry = AbilityRegistry()
        registry.register(make_ability("demo/a"))
        with pytest.raises(ValueError):
            registry.register(make_ability("demo/a"))

    def test_revision_bumps_on_change(self):
        registry = AbilityRegistry()
        start = registry.revision
        registry.register(make_ability("demo/a"))
        registry.unregister("demo/a")
        registry.unregister("demo/a")
        assert registry.revision == start + 2

    def test_meta_flags(self):
        ability = make_ability("demo/a", meta={"visibility": "private", "read_only": True})
        assert ability.is_private
        assert ability.read_only
        assert not make_ability("demo/b").is_private

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self):
        async def async_execute(input, caller):
            return {"user": caller.user_id}

        sync_ability = make_ability("demo/sync")
        async_ability = make_ability("demo/async", execute_callback=async_execute)

        assert await sync_ability.execute({"x": 1}, MEMBER) == {"x": 1}
        assert await async_ability.execute({}, MEMBER) == {"user": "7"}
        assert await make_ability("demo/locked", permission_callback=require_authenticated).check_permissions(ANONYMOUS) is False


class TestGatewayHooks:
    """Test cases for GatewayHooks."""

    def test_filters_run_in_order(self):
        hooks = GatewayHooks()
        hooks.add_tool_definition_filter(lambda tool, name, ability: {**tool, "description": tool["description"] + " one"})
        hooks.add_tool_definition_filter(lambda tool, name, ability: {**tool, "description": tool["description"] + " two"})
        assert hooks.customize_tool_definition({"description": "zero"}, "demo/a", None)["description"] == "zero one two"

    def test_execution_guard_returning_error_vetoes(self):
        hooks = GatewayHooks()
        hooks.add_execution_guard(lambda name, input, user_id: None)
        hooks.add_execution_guard(lambda name, input, user_id: ExecutionVetoedError("QUOTA", "Quota used up."))

        with pytest.raises(ExecutionVetoedError) as exc_info:
            hooks.check_execution("demo/a", {}, "7")
        assert exc_info.value.code == "QUOTA"

    def test_failing_listener_does_not_propagate(self):
        hooks = GatewayHooks()
        calls = []

        def broken(name, user_id, success):
            raise RuntimeError("boom")

        hooks.add_execution_listener(broken)
        hooks.add_execution_listener(lambda name, user_id, success: calls.append((name, user_id, success)))

        hooks.tool_executed("demo/a", "7", True)
        assert calls == [("demo/a", "7", True)]

    def test_discovery_auth_filter(self):
        hooks = GatewayHooks()
        assert hooks.discovery_requires_auth(True) is True
        hooks.add_discovery_auth_filter(lambda require_auth: False)
        assert hooks.discovery_requires_auth(True) is False


class TestAbilityBridge:
    """Test cases for AbilityBridge."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def registry(self):
        registry = AbilityRegistry()
        registry.register(make_ability("demo/public", input_schema={"type": "object", "properties": []}))
        registry.register(make_ability("demo/reader", meta={"read_only": True}))
        registry.register(make_ability("demo/private", meta={"visibility": "private"}))
        registry.register(make_ability("demo/members", permission_callback=require_authenticated))
        return registry

    @pytest.fixture
    def settings_store(self, store):
        return SettingsStore(store)

    @pytest.fixture
    def hooks(self):
        return GatewayHooks()

    @pytest.fixture
    def bridge(self, registry, settings_store, store, hooks):
        return AbilityBridge(registry, settings_store, CacheManager(store), hooks)

    def _names(self, tools):
        return [tool["name"] for tool in tools]

    @pytest.mark.asyncio
    async def test_private_tools_hidden_from_every_caller(self, bridge):
        for caller in (ANONYMOUS, MEMBER):
            assert "demo/private" not in self._names(await bridge.list_tools_for_caller(caller))

    @pytest.mark.asyncio
    async def test_permission_filter_per_caller(self, bridge):
        assert self._names(await bridge.list_tools_for_caller(ANONYMOUS)) == ["demo/public", "demo/reader"]
        assert self._names(await bridge.list_tools_for_caller(MEMBER)) == ["demo/public", "demo/reader", "demo/members"]

    @pytest.mark.asyncio
    async def test_allow_list_restricts_output(self, bridge, settings_store):
        await settings_store.update(exposed_tools=["demo/reader", "demo/private", "demo/unknown"])
        await bridge.invalidate_cache()
        assert self._names(await bridge.list_tools_for_caller(MEMBER)) == ["demo/reader"]

    @pytest.mark.asyncio
    async def test_definition_shape(self, bridge, registry):
        public = await bridge.convert("demo/public", registry.get("demo/public"), ANONYMOUS)
        assert public == {
            "name": "demo/public",
            "description": "demo/public description",
            "inputSchema": {"type": "object", "properties": {}},
        }

        reader = await bridge.convert("demo/reader", registry.get("demo/reader"), ANONYMOUS)
        assert reader["annotations"] == {"readOnlyHint": True}

    @pytest.mark.asyncio
    async def test_description_html_stripped(self, bridge):
        ability = make_ability("demo/html", description='<script>alert("xss")</script><b>Safe</b> description')
        tool = await bridge.convert("demo/html", ability, ANONYMOUS)
        assert tool["description"] == "Safe description"

    def test_strip_tags_drops_style_bodies(self):
        assert strip_tags("<style>p { color: red }</style> <p>Hello</p> ") == "Hello"

    @pytest.mark.asyncio
    async def test_permission_must_be_exactly_true(self, bridge):
        truthy = make_ability("demo/truthy", permission_callback=lambda caller, input: "yes")
        assert await bridge.convert("demo/truthy", truthy, MEMBER) is None

    @pytest.mark.asyncio
    async def test_failing_permission_callback_excludes(self, bridge):
        def explode(caller, input):
            raise RuntimeError("boom")

        assert await bridge.convert("demo/boom", make_ability("demo/boom", permission_callback=explode), MEMBER) is None

    @pytest.mark.asyncio
    async def test_customize_and_expose_hooks(self, bridge, hooks, registry):
        hooks.add_tool_definition_filter(
            lambda tool, name, ability: {**tool, "description": tool["description"].upper()}
        )
        hooks.add_expose_filter(lambda expose, name, ability: expose and name != "demo/reader")

        tools = await bridge.list_tools_for_caller(ANONYMOUS)
        assert self._names(tools) == ["demo/public"]
        assert tools[0]["description"] == "DEMO/PUBLIC DESCRIPTION"

    @pytest.mark.asyncio
    async def test_list_is_cached_until_invalidated(self, bridge, hooks):
        first = await bridge.list_tools_for_caller(ANONYMOUS)
        hooks.add_expose_filter(lambda expose, name, ability: False)

        assert await bridge.list_tools_for_caller(ANONYMOUS) == first
        await bridge.invalidate_cache()
        assert await bridge.list_tools_for_caller(ANONYMOUS) == []

    @pytest.mark.asyncio
    async def test_registry_change_bypasses_stale_cache(self, bridge, registry):
        await bridge.list_tools_for_caller(ANONYMOUS)
        registry.register(make_ability("demo/new"))
        assert "demo/new" in self._names(await bridge.list_tools_for_caller(ANONYMOUS))

    @pytest.mark.asyncio
    async def test_etag_stable_and_content_sensitive(self, bridge, registry):
        etag = await bridge.compute_etag(ANONYMOUS)
        assert await bridge.compute_etag(ANONYMOUS) == etag
        assert await bridge.compute_etag(MEMBER) != etag

        registry.get("demo/public").description = "changed"
        await bridge.invalidate_cache()
        assert await bridge.compute_etag(ANONYMOUS) != etag

    def test_etag_ignores_key_order(self):
        assert AbilityBridge.etag_for([{"a": 1, "b": 2}]) == AbilityBridge.etag_for([{"b": 2, "a": 1}])
