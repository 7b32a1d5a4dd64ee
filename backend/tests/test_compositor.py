"""
Unit tests for the compositor - verifies render size, blending, transforms and encoding.
"""

import io
import pytest
import numpy as np
from PIL import Image

from overlay_studio.services.blend_modes import BlendMode
from overlay_studio.services.compositor import (
    BLEND_FUNCTIONS,
    encode,
    new_surface,
    render,
    resample,
)
from overlay_studio.services.errors import RenderError
from overlay_studio.services.layer_stack import BaseDocument, LayerStack

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
GREY = (128, 128, 128, 255)


@pytest.fixture
def stack():
    return LayerStack()


def add(stack, raster, **changes):
    """Append a layer and apply property changes; returns its id."""
    layer_id = stack.append_new(raster)[-1].id
    if changes:
        stack.update(layer_id, **changes)
    return layer_id


class TestRenderBasics:
    """Output size and passthrough behavior."""

    def test_size_matches_base(self, white_base, stack, raster_factory):
        add(stack, raster_factory(50, 50, RED), x=5000, y=-5000)
        pixels = render(white_base, stack.layers)
        assert pixels.shape == (600, 800, 4)
        assert pixels.dtype == np.uint8

    def test_no_layers_reproduces_base(self, white_base, stack):
        pixels = render(white_base, stack.layers)
        assert np.array_equal(pixels, white_base.raster.pixels)

    def test_invisible_layer_skipped(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), visible=False)
        pixels = render(white_base, stack.layers)
        assert np.array_equal(pixels, white_base.raster.pixels)

    def test_transparent_layer_leaves_base(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, (255, 0, 0, 0)))
        pixels = render(white_base, stack.layers)
        assert np.array_equal(pixels, white_base.raster.pixels)

    def test_zero_opacity_leaves_base(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), opacity=0.0)
        pixels = render(white_base, stack.layers)
        assert np.array_equal(pixels, white_base.raster.pixels)


class TestPlacement:
    """Layers land where their model-space geometry says."""

    def test_axis_aligned_layer(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), x=10, y=10, width=100, height=100)
        pixels = render(white_base, stack.layers)

        assert tuple(pixels[50, 50]) == RED
        assert tuple(pixels[10, 10]) == RED
        assert tuple(pixels[109, 109]) == RED
        assert tuple(pixels[5, 5]) == (255, 255, 255, 255)
        assert tuple(pixels[115, 115]) == (255, 255, 255, 255)

    def test_scaled_up_layer(self, white_base, stack, raster_factory):
        add(stack, raster_factory(10, 10, RED), x=100, y=100, width=200, height=200)
        pixels = render(white_base, stack.layers)
        assert tuple(pixels[200, 200]) == RED
        assert tuple(pixels[95, 95]) == (255, 255, 255, 255)

    def test_upscaled_layer_is_solid_to_its_edges(self, white_base, stack, raster_factory):
        add(stack, raster_factory(10, 10, RED), x=100, y=100, width=200, height=200)
        pixels = render(white_base, stack.layers)

        for row, col in [(100, 100), (105, 105), (100, 150), (150, 299), (299, 299)]:
            assert tuple(pixels[row, col]) == RED, (row, col)
        for row, col in [(99, 99), (99, 150), (150, 300), (300, 300)]:
            assert tuple(pixels[row, col]) == (255, 255, 255, 255), (row, col)

    def test_fractional_edge_covers_half_a_pixel(self, white_base, stack, raster_factory):
        add(stack, raster_factory(10, 10, RED), x=10.5, y=10, width=20, height=20)
        pixels = render(white_base, stack.layers)

        r, g, b, a = pixels[20, 10]
        assert (r, a) == (255, 255)
        assert abs(int(g) - 128) <= 1 and abs(int(b) - 128) <= 1
        assert tuple(pixels[20, 11]) == RED
        assert tuple(pixels[20, 9]) == (255, 255, 255, 255)

    def test_quarter_turn(self, white_base, stack, raster_factory):
        # 100x50 box centered on (100, 100), turned upright
        add(stack, raster_factory(100, 50, RED), x=50, y=75, width=100, height=50, rotation=90)
        pixels = render(white_base, stack.layers)

        assert tuple(pixels[60, 100]) == RED
        assert tuple(pixels[140, 100]) == RED
        # Inside the unrotated box but outside the rotated one
        assert tuple(pixels[100, 60]) == (255, 255, 255, 255)

    def test_partially_offscreen(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), x=-50, y=550, width=100, height=100)
        pixels = render(white_base, stack.layers)
        assert tuple(pixels[599, 0]) == RED
        assert tuple(pixels[599, 60]) == (255, 255, 255, 255)

    def test_stack_order_is_paint_order(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), x=0, y=0)
        top = add(stack, raster_factory(100, 100, BLUE), x=0, y=0)
        assert tuple(render(white_base, stack.layers)[50, 50]) == BLUE

        stack.lower_layer(top)
        assert tuple(render(white_base, stack.layers)[50, 50]) == RED


class TestBlending:
    """Opacity and blend operators."""

    def test_half_opacity_normal(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, RED), x=0, y=0, opacity=0.5)
        r, g, b, a = render(white_base, stack.layers)[50, 50]
        assert r == 255
        assert abs(int(g) - 128) <= 1
        assert abs(int(b) - 128) <= 1
        assert a == 255

    def test_multiply_over_white_is_identity(self, white_base, stack, raster_factory):
        add(stack, raster_factory(100, 100, GREY), x=0, y=0, blend_mode=BlendMode.MULTIPLY)
        assert tuple(render(white_base, stack.layers)[50, 50]) == GREY

    def test_multiply_over_color(self, raster_factory, stack):
        base = BaseDocument.from_raster(raster_factory(200, 200, (200, 100, 50, 255)))
        add(stack, raster_factory(100, 100, GREY), x=0, y=0, blend_mode=BlendMode.MULTIPLY)
        r, g, b, _ = render(base, stack.layers)[50, 50]
        expected = np.array([200, 100, 50]) * 128 / 255
        assert np.allclose([r, g, b], expected, atol=1)

    def test_screen_over_black_is_source(self, raster_factory, stack):
        base = BaseDocument.from_raster(raster_factory(200, 200, (0, 0, 0, 255)))
        add(stack, raster_factory(100, 100, GREY), x=0, y=0, blend_mode=BlendMode.SCREEN)
        assert tuple(render(base, stack.layers)[50, 50]) == GREY

    def test_difference_of_same_color_is_black(self, raster_factory, stack):
        base = BaseDocument.from_raster(raster_factory(200, 200, GREY))
        add(stack, raster_factory(100, 100, GREY), x=0, y=0, blend_mode=BlendMode.DIFFERENCE)
        assert tuple(render(base, stack.layers)[50, 50]) == (0, 0, 0, 255)

    def test_every_blend_function_keeps_range(self):
        rng = np.random.default_rng(7)
        cb = rng.random((8, 8, 3)).astype(np.float32)
        cs = rng.random((8, 8, 3)).astype(np.float32)
        for mode, func in BLEND_FUNCTIONS.items():
            out = func(cb, cs)
            assert out.shape == (8, 8, 3), mode
            assert np.all(out >= -1e-5) and np.all(out <= 1 + 1e-5), mode

    def test_two_layer_scene(self, white_base, stack, raster_factory):
        """A normal layer with a rotated, half-opaque multiply layer on top."""
        add(stack, raster_factory(300, 200, RED), x=100, y=100)
        b = add(
            stack,
            raster_factory(200, 200, BLUE),
            x=250,
            y=150,
            rotation=45,
            opacity=0.5,
            blend_mode=BlendMode.MULTIPLY,
        )

        with_b = render(white_base, stack.layers)
        stack.update(b, visible=False)
        without_b = render(white_base, stack.layers)

        assert with_b.shape == without_b.shape == (600, 800, 4)
        assert not np.array_equal(with_b, without_b)
        # Outside B's footprint nothing changes
        assert np.array_equal(with_b[:100, :], without_b[:100, :])


class TestHelpers:
    """Surface allocation and premultiplied resampling."""

    def test_new_surface_rejects_bad_size(self):
        with pytest.raises(RenderError) as exc:
            new_surface(-1, 10)
        assert exc.value.code == "RENDER_FAILED"

    def test_new_surface_rejects_oversized_area(self):
        with pytest.raises(RenderError) as exc:
            new_surface(3_000_000_000, 10)
        assert exc.value.code == "RENDER_FAILED"

    def test_resample_failure_is_render_error(self):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        with pytest.raises(RenderError) as exc:
            resample(pixels, 3_000_000_000, 10)
        assert exc.value.code == "RENDER_FAILED"

    def test_resample_transparent_pixels_carry_no_color(self):
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[..., 1] = 255  # green, fully transparent
        out = resample(pixels, 2, 2)
        assert np.allclose(out, 0)

    def test_resample_same_size_is_premultiplied(self):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[...] = (255, 255, 255, 51)
        out = resample(pixels, 2, 2)
        assert np.allclose(out[..., 0], 0.2, atol=1e-3)


class TestEncode:
    """Serialization to the supported output formats."""

    @pytest.fixture
    def pixels(self):
        pixels = np.zeros((32, 48, 4), dtype=np.uint8)
        pixels[...] = (10, 200, 30, 255)
        pixels[:16, :16] = (255, 0, 0, 0)
        return pixels

    def test_png_is_lossless(self, pixels):
        decoded = np.array(Image.open(io.BytesIO(encode(pixels, "image/png"))).convert("RGBA"))
        assert np.array_equal(decoded, pixels)

    def test_webp_is_lossless(self, pixels):
        image = Image.open(io.BytesIO(encode(pixels, "image/webp")))
        assert image.format == "WEBP"
        decoded = np.array(image.convert("RGBA"))
        assert np.array_equal(decoded[16:, 16:], pixels[16:, 16:])

    def test_jpeg_flattens_onto_black(self, pixels):
        image = Image.open(io.BytesIO(encode(pixels, "image/jpeg")))
        assert image.format == "JPEG"
        assert image.mode == "RGB"
        assert image.size == (48, 32)
        # Transparent corner comes out dark
        assert max(image.getpixel((1, 1))) < 40

    def test_unknown_mime_falls_back_to_png(self, pixels):
        image = Image.open(io.BytesIO(encode(pixels, "image/gif")))
        assert image.format == "PNG"
