"""
Tests for observation/context.py — the per-observation data bag.
"""

import gc
import time

import pytest

from observation.context import Context
from observation.errors import MissingContextValue
from observation.keyvalues import KeyValue, KeyValues


class HttpRequest:
    def __init__(self, path: str):
        self.path = path


class HttpContext(Context):
    """Domain context with a strongly-typed field."""

    def __init__(self, request: HttpRequest):
        super().__init__(name="http.server.requests")
        self.request = request
        self.status_code = None


class _Parent:
    """Stand-in for an Observation; anything weak-referenceable works."""


# ============================================================================
# TestContextSlots
# ============================================================================

class TestContextSlots:
    def test_defaults(self):
        ctx = Context()
        assert ctx.name is None
        assert ctx.contextual_name is None
        assert ctx.get_error() is None
        assert ctx.parent_observation is None
        assert ctx.start_time is None
        assert ctx.started_at is None
        assert ctx.low_cardinality_key_values == KeyValues.empty()
        assert ctx.high_cardinality_key_values == KeyValues.empty()

    def test_names(self):
        ctx = Context(name="op.a")
        ctx.set_contextual_name("GET /orders")
        assert ctx.get_name() == "op.a"
        assert ctx.get_contextual_name() == "GET /orders"

    def test_error(self):
        ctx = Context()
        err = ValueError("boom")
        ctx.set_error(err)
        assert ctx.get_error() is err

    def test_parent_is_weak(self):
        ctx = Context()
        parent = _Parent()
        ctx.set_parent_observation(parent)
        assert ctx.get_parent_observation() is parent
        del parent
        gc.collect()
        assert ctx.parent_observation is None

    def test_parent_cleared(self):
        ctx = Context()
        parent = _Parent()
        ctx.parent_observation = parent
        ctx.parent_observation = None
        assert ctx.parent_observation is None

    def test_mark_started(self):
        ctx = Context()
        ctx.mark_started()
        assert ctx.start_time is not None
        assert "T" in ctx.started_at
        time.sleep(0.01)
        assert ctx.elapsed_seconds() > 0

    def test_elapsed_before_start(self):
        assert Context().elapsed_seconds() is None

    def test_subclass_typed_fields(self):
        ctx = HttpContext(HttpRequest("/orders"))
        assert ctx.name == "http.server.requests"
        assert ctx.request.path == "/orders"


# ============================================================================
# TestContextStore
# ============================================================================

class TestContextStore:
    def test_put_get_by_type_tag(self):
        ctx = Context()
        request = HttpRequest("/a")
        ctx.put(HttpRequest, request)
        assert ctx.get(HttpRequest) is request
        assert ctx.contains(HttpRequest)
        assert HttpRequest in ctx

    def test_put_overwrites(self):
        ctx = Context().put("k", 1).put("k", 2)
        assert ctx.get("k") == 2

    def test_get_absent(self):
        ctx = Context()
        assert ctx.get("missing") is None
        assert ctx.get("missing", "dflt") == "dflt"
        assert ctx.get_or_default("missing", 5) == 5

    def test_get_required_absent(self):
        ctx = Context()
        with pytest.raises(MissingContextValue) as exc_info:
            ctx.get_required(HttpRequest)
        assert exc_info.value.key is HttpRequest
        assert "HttpRequest" in str(exc_info.value)

    def test_missing_value_is_key_error(self):
        with pytest.raises(KeyError):
            Context().get_required("nope")

    def test_get_required_stored_none(self):
        ctx = Context().put("k", None)
        assert ctx.get_required("k") is None

    def test_remove(self):
        ctx = Context().put("k", 1)
        assert ctx.remove("k") == 1
        assert not ctx.contains("k")
        assert ctx.remove("k") is None

    def test_compute_if_absent(self):
        ctx = Context()
        calls = []

        def factory(key):
            calls.append(key)
            return [key]

        first = ctx.compute_if_absent("k", factory)
        second = ctx.compute_if_absent("k", factory)
        assert first is second
        assert calls == ["k"]

    def test_clear(self):
        ctx = Context().put("a", 1).put("b", 2)
        ctx.clear()
        assert not ctx.contains("a")


# ============================================================================
# TestContextKeyValues
# ============================================================================

class TestContextKeyValues:
    def test_add_low_and_high(self):
        ctx = Context()
        ctx.add_low_cardinality_key_value(KeyValue.of("method", "GET"))
        ctx.add_high_cardinality_key_value(KeyValue.of("user.id", "u-42"))
        assert ctx.get_low_cardinality_key_value("method").value == "GET"
        assert ctx.get_high_cardinality_key_value("user.id").value == "u-42"
        assert ctx.get_low_cardinality_key_value("user.id") is None

    def test_add_many_overrides(self):
        ctx = Context()
        ctx.add_low_cardinality_key_values(KeyValues.of("a", "1", "b", "2"))
        ctx.add_low_cardinality_key_values(KeyValues.of("a", "9"))
        assert ctx.low_cardinality_key_values == KeyValues.of("a", "9", "b", "2")

    def test_remove(self):
        ctx = Context()
        ctx.add_low_cardinality_key_values(KeyValues.of("a", "1", "b", "2"))
        ctx.add_high_cardinality_key_values(KeyValues.of("c", "3"))
        ctx.remove_low_cardinality_key_values("a")
        ctx.remove_high_cardinality_key_values("c")
        assert ctx.low_cardinality_key_values.keys() == ["b"]
        assert len(ctx.high_cardinality_key_values) == 0

    def test_all_key_values(self):
        ctx = Context()
        ctx.add_low_cardinality_key_values(KeyValues.of("a", "1"))
        ctx.add_high_cardinality_key_values(KeyValues.of("b", "2"))
        assert ctx.all_key_values().to_dict() == {"a": "1", "b": "2"}

    def test_repr(self):
        ctx = Context(name="op.a")
        assert "op.a" in repr(ctx)
