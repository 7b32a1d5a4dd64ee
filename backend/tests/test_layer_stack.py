"""
Unit tests for the layer stack: ordering, selection, duplication, placement.
"""

import pytest

from overlay_studio.services.blend_modes import BlendMode
from overlay_studio.services.geometry import Bounds
from overlay_studio.services.layer_stack import LayerStack, new_layer_id


@pytest.fixture
def stack(raster_factory):
    """Stack with three 100x50 layers A, B, C (bottom to top)."""
    s = LayerStack()
    for name in ("A.png", "B.png", "C.png"):
        s.append_new(raster_factory(100, 50, name=name), base_size=(800, 600))
    return s


def names(stack):
    return [layer.name for layer in stack]


class TestAppend:
    """Default placement and sizing of new layers."""

    def test_defaults(self, raster_factory):
        s = LayerStack()
        layers = s.append_new(raster_factory(100, 50, name="logo.png"), base_size=(800, 600))
        layer = layers[-1]
        assert layer.name == "logo.png"
        assert (layer.x, layer.y) == (20, 20)
        assert (layer.width, layer.height) == (100, 50)
        assert layer.rotation == 0
        assert layer.opacity == 1
        assert layer.blend_mode == BlendMode.NORMAL
        assert layer.visible is True

    def test_consecutive_offsets(self, stack):
        assert [(layer.x, layer.y) for layer in stack] == [(20, 20), (30, 30), (40, 40)]

    def test_size_clamped_per_axis_to_base(self, raster_factory):
        s = LayerStack()
        layer = s.append_new(raster_factory(1000, 100), base_size=(800, 600))[-1]
        assert (layer.width, layer.height) == (800, 100)

    def test_without_base_uses_natural_size(self, raster_factory):
        s = LayerStack()
        layer = s.append_new(raster_factory(1000, 100))[-1]
        assert (layer.width, layer.height) == (1000, 100)

    def test_suggested_bounds(self, raster_factory):
        s = LayerStack()
        layer = s.append_new(raster_factory(10, 10), suggested=Bounds(x=5, y=6, width=2, height=40))[-1]
        assert (layer.x, layer.y, layer.width, layer.height) == (5, 6, 5, 40)

    def test_ids_are_unique(self, stack):
        assert len(set(stack.ids())) == 3

    def test_new_id_avoids_existing(self):
        assert new_layer_id({"deadbeef"}) != "deadbeef"

    def test_clear_resets_placement(self, stack, raster_factory):
        stack.clear()
        assert len(stack) == 0
        assert stack.active_id is None
        layer = stack.append_new(raster_factory(10, 10))[-1]
        assert (layer.x, layer.y) == (20, 20)


class TestOrdering:
    """Raise and lower swap with the neighbor."""

    def test_raise(self, stack):
        a = stack.layers[0].id
        stack.raise_layer(a)
        assert names(stack) == ["B.png", "A.png", "C.png"]

    def test_raise_top_is_noop(self, stack):
        before = stack.layers
        stack.raise_layer(stack.layers[-1].id)
        assert stack.layers is before

    def test_lower(self, stack):
        stack.lower_layer(stack.layers[2].id)
        assert names(stack) == ["A.png", "C.png", "B.png"]

    def test_lower_bottom_is_noop(self, stack):
        before = stack.layers
        stack.lower_layer(stack.layers[0].id)
        assert stack.layers is before

    def test_raise_then_lower_restores_order(self, stack):
        before = stack.ids()
        b = stack.layers[1].id
        stack.raise_layer(b)
        stack.lower_layer(b)
        assert stack.ids() == before

    def test_unknown_id_is_noop(self, stack):
        before = stack.layers
        stack.raise_layer("missing")
        stack.lower_layer("missing")
        stack.remove("missing")
        stack.duplicate("missing")
        stack.update("missing", x=99)
        assert stack.layers is before


class TestSelection:
    """Active id always refers to a layer in the stack, or is None."""

    def test_select(self, stack):
        b = stack.layers[1].id
        assert stack.select(b) == b
        assert stack.active_layer.name == "B.png"

    def test_select_unknown_keeps_current(self, stack):
        b = stack.layers[1].id
        stack.select(b)
        stack.select("missing")
        assert stack.active_id == b

    def test_select_none_clears(self, stack):
        stack.select(stack.layers[0].id)
        stack.select(None)
        assert stack.active_id is None

    def test_remove_active_clears_selection(self, stack):
        b = stack.layers[1].id
        stack.select(b)
        stack.remove(b)
        assert stack.active_id is None
        assert names(stack) == ["A.png", "C.png"]

    def test_remove_other_keeps_selection(self, stack):
        a = stack.layers[0].id
        stack.select(a)
        stack.remove(stack.layers[2].id)
        assert stack.active_id == a


class TestDuplicate:
    """Duplicates sit directly above their source."""

    def test_duplicate(self, stack):
        src = stack.layers[0]
        stack.update(src.id, rotation=15, opacity=0.5, blend_mode=BlendMode.SCREEN)
        stack.duplicate(src.id)

        assert len(stack) == 4
        clone = stack.layers[1]
        assert clone.id != src.id
        assert clone.name == "A.png copy"
        assert (clone.x, clone.y) == (src.x + 20, src.y + 20)
        assert clone.rotation == 15
        assert clone.opacity == 0.5
        assert clone.blend_mode == BlendMode.SCREEN
        assert clone.raster is src.raster

    def test_update_replaces_value(self, stack):
        a = stack.layers[0]
        stack.update(a.id, x=123)
        assert stack.layers[0].x == 123
        # Old value is untouched
        assert a.x == 20

    def test_visible_layers(self, stack):
        stack.update(stack.layers[1].id, visible=False)
        assert [layer.name for layer in stack.visible_layers()] == ["A.png", "C.png"]
