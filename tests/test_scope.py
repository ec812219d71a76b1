"""
Tests for observation/scope.py — current-observation tracking and nesting.
"""

import asyncio
import threading

import pytest

from observation.context import Context
from observation.handler import ObservationHandler
from observation.observation import Observation
from observation.registry import ObservationRegistry
from observation.scope import Scope, get_current_observation, get_current_scope


class ScopeRecorder(ObservationHandler):
    def __init__(self):
        self.log = []

    def supports_context(self, context: Context) -> bool:
        return True

    def on_scope_opened(self, context: Context) -> None:
        self.log.append(f"opened:{context.name}")

    def on_scope_closed(self, context: Context) -> None:
        self.log.append(f"closed:{context.name}")


class FailingScopeHandler(ObservationHandler):
    def supports_context(self, context: Context) -> bool:
        return True

    def on_scope_opened(self, context: Context) -> None:
        raise RuntimeError("scope handler broke")


def _registry(*handlers):
    registry = ObservationRegistry.create(enabled=True)
    for h in handlers:
        registry.observation_handler(h)
    return registry


# ============================================================================
# TestNesting
# ============================================================================

class TestNesting:
    def test_nested_scopes_restore_previous(self):
        registry = _registry()
        a = Observation.create_started("op.a", registry)
        b = Observation.create_started("op.b", registry)

        scope_a = a.open_scope()
        scope_b = b.open_scope()
        assert get_current_observation() is b
        scope_b.close()
        assert get_current_observation() is a
        scope_a.close()
        assert get_current_observation() is None

        b.stop()
        a.stop()

    def test_nested_with_blocks(self):
        registry = _registry()
        a = Observation.create_started("op.a", registry)
        b = Observation.create_started("op.b", registry)
        with a.open_scope() as scope_a:
            with b.open_scope() as scope_b:
                assert get_current_scope() is scope_b
                assert scope_b.previous is scope_a
            assert get_current_scope() is scope_a
        assert get_current_scope() is None

    def test_scope_restored_on_exception(self):
        obs = Observation.create_started("op.a", _registry())
        with pytest.raises(ValueError):
            with obs.open_scope():
                raise ValueError("inside scope")
        assert get_current_observation() is None

    def test_double_close_is_noop(self):
        registry = _registry()
        a = Observation.create_started("op.a", registry)
        b = Observation.create_started("op.b", registry)
        with a.open_scope():
            scope_b = b.open_scope()
            scope_b.close()
            scope_b.close()
            assert get_current_observation() is a
            assert scope_b.closed

    def test_same_observation_reopened(self):
        obs = Observation.create_started("op.a", _registry())
        with obs.open_scope():
            with obs.open_scope() as inner:
                assert inner.previous.observation is obs
            assert get_current_observation() is obs
        assert get_current_observation() is None

    def test_out_of_order_close_skips_closed_scopes(self):
        registry = _registry()
        a = Observation.create_started("op.a", registry)
        b = Observation.create_started("op.b", registry)
        scope_a = a.open_scope()
        scope_b = b.open_scope()
        scope_a.close()
        assert get_current_observation() is None
        scope_b.close()
        assert get_current_observation() is None
        assert isinstance(scope_b.previous, Scope)

    def test_repr(self):
        obs = Observation.create_started("op.a", _registry())
        scope = obs.open_scope()
        assert "open" in repr(scope)
        scope.close()
        assert "closed" in repr(scope)


# ============================================================================
# TestParentLink
# ============================================================================

class TestParentLink:
    def test_parent_taken_from_current_scope(self):
        registry = _registry()
        with Observation.create_not_started("op.parent", registry) as parent:
            child = Observation.create_not_started("op.child", registry)
            assert child.context.parent_observation is parent
        assert parent.context.parent_observation is None

    def test_explicit_parent(self):
        registry = _registry()
        parent = Observation.create_started("op.parent", registry)
        child = Observation.create_not_started("op.child", registry).parent_observation(parent)
        assert child.context.get_parent_observation() is parent

    def test_noop_parent_ignored(self):
        registry = _registry()
        disabled = ObservationRegistry.create(enabled=False)
        with Observation.create_not_started("op.noop", disabled):
            child = Observation.create_not_started("op.child", registry)
            assert child.context.parent_observation is None


# ============================================================================
# TestScopeHandlers
# ============================================================================

class TestScopeHandlers:
    def test_scope_callbacks(self):
        recorder = ScopeRecorder()
        obs = Observation.create_started("op.a", _registry(recorder))
        with obs.open_scope():
            pass
        obs.stop()
        assert recorder.log == ["opened:op.a", "closed:op.a"]

    def test_failing_scope_handler_leaves_slot_clean(self):
        obs = Observation.create_started("op.a", _registry(FailingScopeHandler()))
        with pytest.raises(RuntimeError, match="scope handler broke"):
            obs.open_scope()
        assert get_current_observation() is None

    def test_observe_stops_when_scope_open_fails(self):
        obs = Observation.create_not_started("op.a", _registry(FailingScopeHandler()))
        with pytest.raises(RuntimeError):
            obs.observe(lambda: None)
        assert obs.state.name == "STOPPED"


# ============================================================================
# TestIsolation
# ============================================================================

class TestIsolation:
    def test_threads_have_independent_current(self):
        registry = _registry()
        results = {}
        barrier = threading.Barrier(3)

        def worker(name):
            obs = Observation.create_started(name, registry)
            with obs.open_scope():
                barrier.wait()
                results[name] = get_current_observation().name
            obs.stop()

        threads = [threading.Thread(target=worker, args=(f"op.{i}",)) for i in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == {"op.0": "op.0", "op.1": "op.1", "op.2": "op.2"}
        assert get_current_observation() is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks(self):
        """
        Run 3 concurrent tasks, each observing its own operation.
        Each task must see only its own observation as current.
        """
        registry = _registry()
        results = {}

        async def task(name: str):
            async def body():
                await asyncio.sleep(0.01)
                current = get_current_observation()
                results[name] = current.name if current else None

            await Observation.create_not_started(name, registry).observe_async(body)

        await asyncio.gather(task("op.a"), task("op.b"), task("op.c"))

        assert results == {"op.a": "op.a", "op.b": "op.b", "op.c": "op.c"}
        assert get_current_observation() is None
