"""Tests for the node registry, health monitor and node selector."""

import asyncio

import pytest

from controller.exceptions import ConflictError, InsufficientNodesError, InvalidReplicationFactorError, NotFoundError
from controller.node_health import NodeHealthMonitor
from controller.types import NodeStatus
from fakes import add_nodes


class TestNodeRegistry:
    @pytest.mark.asyncio
    async def test_register_node_starts_unknown(self, registry):
        node = await registry.register_node("node-a", "10.1.0.1", 9000)

        assert node.status == NodeStatus.UNKNOWN
        assert node.last_heartbeat is None
        stored = await registry.get_node("node-a")
        assert stored == node

    @pytest.mark.asyncio
    async def test_register_duplicate_conflicts(self, registry):
        await registry.register_node("node-a", "10.1.0.1", 9000)
        with pytest.raises(ConflictError):
            await registry.register_node("node-a", "10.1.0.2", 9001)

    @pytest.mark.asyncio
    async def test_upsert_replaces_address(self, registry):
        await registry.upsert_node("node-a", "10.1.0.1", 9000, NodeStatus.UNKNOWN)
        node = await registry.upsert_node("node-a", "10.1.0.9", 9100, NodeStatus.UP)

        assert (node.host, node.port, node.status) == ("10.1.0.9", 9100, NodeStatus.UP)
        assert len(await registry.get_all()) == 1

    @pytest.mark.asyncio
    async def test_update_status_returns_previous(self, registry):
        await add_nodes(registry, 1)

        previous = await registry.update_status("node-1", NodeStatus.DOWN)

        assert previous == NodeStatus.UP
        assert (await registry.get_node("node-1")).status == NodeStatus.DOWN

    @pytest.mark.asyncio
    async def test_update_status_unknown_node(self, registry):
        with pytest.raises(NotFoundError):
            await registry.update_status("ghost", NodeStatus.UP)

    @pytest.mark.asyncio
    async def test_up_nodes_sorted_and_filtered(self, registry):
        await add_nodes(registry, 3)
        await registry.update_status("node-2", NodeStatus.DOWN)

        up = await registry.get_up_nodes()

        assert [n.node_id for n in up] == ["node-1", "node-3"]
        assert (await registry.get_status_map())["node-2"] == NodeStatus.DOWN


class TestNodeHealthMonitor:
    @pytest.mark.asyncio
    async def test_startup_registration_never_marks_down(self, registry, fake_store):
        fake_store.offline.add(("10.2.0.2", 9000))
        monitor = NodeHealthMonitor(registry, fake_store)

        await monitor.register_configured_nodes([
            ("a", "10.2.0.1", 9000),
            ("b", "10.2.0.2", 9000),
        ])

        statuses = await registry.get_status_map()
        assert statuses == {"a": NodeStatus.UP, "b": NodeStatus.UNKNOWN}
        assert (await registry.get_node("a")).last_heartbeat is not None

    @pytest.mark.asyncio
    async def test_state_transitions(self, registry, fake_store):
        nodes = await add_nodes(registry, 2)
        monitor = NodeHealthMonitor(registry, fake_store)
        before = (await registry.get_node("node-2")).last_heartbeat

        fake_store.take_offline(nodes[1])
        await monitor.check_all()

        node_2 = await registry.get_node("node-2")
        assert node_2.status == NodeStatus.DOWN
        assert node_2.last_heartbeat == before

        fake_store.bring_online(nodes[1])
        await monitor.check_all()
        assert (await registry.get_node("node-2")).status == NodeStatus.UP

    @pytest.mark.asyncio
    async def test_probe_node(self, registry, fake_store):
        await registry.register_node("node-x", "10.3.0.1", 9000)
        monitor = NodeHealthMonitor(registry, fake_store)

        assert await monitor.probe_node("node-x") == NodeStatus.UP
        assert await monitor.probe_node("missing") is None

    @pytest.mark.asyncio
    async def test_start_stop(self, registry, fake_store):
        await add_nodes(registry, 1, status=NodeStatus.UNKNOWN)
        monitor = NodeHealthMonitor(registry, fake_store, interval=3600)

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert monitor.running is False
        assert (await registry.get_node("node-1")).status == NodeStatus.UP


class TestNodeSelector:
    @pytest.mark.asyncio
    async def test_selects_distinct_nodes(self, registry, selector):
        await add_nodes(registry, 5)

        selected = await selector.select_nodes(3)

        assert len({n.node_id for n in selected}) == 3
        assert all(n.is_up for n in selected)

    @pytest.mark.asyncio
    async def test_rotates_start_node(self, registry, selector):
        await add_nodes(registry, 3)

        firsts = [(await selector.select_nodes(2))[0].node_id for _ in range(3)]

        assert firsts == ["node-1", "node-2", "node-3"]

    @pytest.mark.asyncio
    async def test_every_node_eventually_selected(self, registry, selector):
        await add_nodes(registry, 4)

        seen = set()
        for _ in range(8):
            seen.update(n.node_id for n in await selector.select_nodes(1))

        assert seen == {"node-1", "node-2", "node-3", "node-4"}

    @pytest.mark.asyncio
    async def test_skips_non_up_nodes(self, registry, selector):
        await add_nodes(registry, 3)
        await registry.update_status("node-2", NodeStatus.DOWN)

        for _ in range(4):
            assert "node-2" not in {n.node_id for n in await selector.select_nodes(2)}

    @pytest.mark.asyncio
    async def test_insufficient_nodes(self, registry, selector):
        await add_nodes(registry, 2)

        with pytest.raises(InsufficientNodesError) as exc_info:
            await selector.select_nodes(3)
        assert exc_info.value.required == 3
        assert exc_info.value.available == 2

    @pytest.mark.asyncio
    async def test_invalid_factor(self, selector):
        with pytest.raises(InvalidReplicationFactorError):
            await selector.select_nodes(0)

    @pytest.mark.asyncio
    async def test_concurrent_selection_spreads_load(self, registry, selector):
        await add_nodes(registry, 4)

        results = await asyncio.gather(*(selector.select_nodes(1) for _ in range(4)))

        assert {r[0].node_id for r in results} == {"node-1", "node-2", "node-3", "node-4"}
