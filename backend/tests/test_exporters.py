"""
Unit tests for exports - filenames, formats and output dimensions.
"""

import io
import pytest
import numpy as np
from PIL import Image

from overlay_studio.services.errors import RenderError
from overlay_studio.services.exporters import ExportService, sanitize_file_base
from overlay_studio.services.layer_stack import BaseDocument, LayerStack


@pytest.fixture
def service():
    return ExportService()


@pytest.fixture
def stack(raster_factory):
    s = LayerStack()
    s.append_new(raster_factory(100, 50, (255, 0, 0, 255), name="My Logo (final).png"), base_size=(800, 600))
    return s


def open_image(payload):
    return Image.open(io.BytesIO(payload.content))


class TestSanitize:
    """Filename base sanitizing."""

    @pytest.mark.parametrize("name,expected", [
        ("photo.png", "photo"),
        ("My Photo (1).jpeg", "My_Photo_1_"),
        ("archive.tar.gz", "archive_tar"),
        ("plain", "plain"),
        ("émoji-ok_1.webp", "_moji-ok_1"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_file_base(name) == expected

    def test_default(self):
        assert sanitize_file_base("", "composition") == "composition"
        assert sanitize_file_base(None) == "image"


class TestCompositeExport:
    """Flattened exports follow the base format."""

    def test_no_base_declines(self, service, stack):
        assert service.export_composite(None, stack) is None

    def test_png_base(self, service, stack, white_base):
        payload = service.export_composite(white_base, stack)
        assert payload.filename == "base_composite.png"
        assert payload.media_type == "image/png"
        image = open_image(payload)
        assert image.format == "PNG"
        assert image.size == (800, 600)
        assert payload.size_bytes == len(payload.content)

    def test_jpeg_base(self, service, stack, raster_factory):
        base = BaseDocument.from_raster(raster_factory(320, 240, name="holiday.jpg", mime_type="image/jpeg"))
        payload = service.export_composite(base, stack)
        assert payload.filename == "holiday_composite.jpg"
        assert payload.media_type == "image/jpeg"
        image = open_image(payload)
        assert image.format == "JPEG"
        assert image.size == (320, 240)

    def test_webp_base(self, service, stack, raster_factory):
        base = BaseDocument.from_raster(raster_factory(64, 64, name="shot.webp", mime_type="image/webp"))
        payload = service.export_composite(base, stack)
        assert payload.filename == "shot_composite.webp"
        assert open_image(payload).format == "WEBP"

    def test_hidden_layers_not_rendered(self, service, stack, white_base):
        stack.update(stack.layers[0].id, visible=False)
        image = np.array(open_image(service.export_composite(white_base, stack)).convert("RGBA"))
        assert np.all(image == 255)


class TestOriginalExport:
    """Original bytes are handed back untouched."""

    def test_passthrough(self, service, stack):
        raster = stack.layers[0].raster
        payload = service.export_original(raster)
        assert payload.content == raster.content
        assert payload.filename == "My_Logo_final__original.png"
        assert payload.media_type == "image/png"

    def test_missing(self, service):
        assert service.export_original(None) is None


class TestLayerExports:
    """Single-layer crop and transformed exports."""

    def test_crop_uses_rounded_box(self, service, stack):
        layer_id = stack.layers[0].id
        stack.update(layer_id, width=120.5, height=60.4, rotation=33, opacity=0.1)
        payload = service.export_layer_crop(stack.get(layer_id))

        assert payload.filename == "My_Logo_final__crop_121x60.png"
        image = open_image(payload)
        assert image.size == (121, 60)
        # Opacity is not applied
        assert image.convert("RGBA").getpixel((60, 30)) == (255, 0, 0, 255)

    def test_transformed_quarter_turn(self, service, stack):
        layer_id = stack.layers[0].id
        stack.update(layer_id, rotation=90)
        payload = service.export_layer_transformed(stack.get(layer_id))

        assert payload.filename == "My_Logo_final__rot_90deg_50x100.png"
        image = open_image(payload).convert("RGBA")
        assert image.size == (50, 100)
        assert image.getpixel((25, 50)) == (255, 0, 0, 255)

    def test_transformed_45_degrees_has_transparent_corners(self, service, stack):
        layer_id = stack.layers[0].id
        stack.update(layer_id, rotation=45)
        payload = service.export_layer_transformed(stack.get(layer_id))

        assert payload.filename == "My_Logo_final__rot_45deg_106x106.png"
        image = open_image(payload).convert("RGBA")
        assert image.getpixel((0, 0))[3] == 0
        assert image.getpixel((53, 53)) == (255, 0, 0, 255)

    def test_negative_rotation_name(self, service, stack):
        layer_id = stack.layers[0].id
        stack.update(layer_id, rotation=-12.5)
        payload = service.export_layer_transformed(stack.get(layer_id))
        assert "_rot_-12deg_" in payload.filename

    def test_missing_layer(self, service):
        assert service.export_layer_crop(None) is None
        assert service.export_layer_transformed(None) is None

    def test_crop_matches_transformed_without_rotation(self, service, raster_factory):
        raster = raster_factory(4, 4, name="tile.png")
        raster.pixels[..., 0] = np.arange(16, dtype=np.uint8).reshape(4, 4) * 16
        raster.pixels[..., 1] = 0
        raster.pixels[..., 2] = 255
        stack = LayerStack()
        layer_id = stack.append_new(raster)[-1].id
        stack.update(layer_id, width=40, height=40)

        crop = np.array(open_image(service.export_layer_crop(stack.get(layer_id))).convert("RGBA"))
        rotated = np.array(open_image(service.export_layer_transformed(stack.get(layer_id))).convert("RGBA"))

        assert crop.shape == rotated.shape == (40, 40, 4)
        assert np.array_equal(crop, rotated)
        # Opaque right up to the border
        assert np.all(crop[..., 3] == 255)

    def test_upscaled_transformed_edges_are_solid(self, service, raster_factory):
        stack = LayerStack()
        layer_id = stack.append_new(raster_factory(4, 4, (255, 0, 0, 255)))[-1].id
        stack.update(layer_id, width=40, height=40)

        image = open_image(service.export_layer_transformed(stack.get(layer_id))).convert("RGBA")
        for point in [(0, 0), (39, 0), (0, 39), (39, 39)]:
            assert image.getpixel(point) == (255, 0, 0, 255), point

    def test_oversized_layer_raises_render_error(self, service, stack):
        layer_id = stack.layers[0].id
        stack.update(layer_id, width=3e9, height=10)

        with pytest.raises(RenderError) as exc:
            service.export_layer_crop(stack.get(layer_id))
        assert exc.value.code == "RENDER_FAILED"

        with pytest.raises(RenderError):
            service.export_layer_transformed(stack.get(layer_id))
