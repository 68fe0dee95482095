from io import BytesIO

from PIL import Image

from nla_api.services import image_processor
from nla_api.services.image_processor import process_image_buffer


def _make_image(width: int, height: int, mode: str = "RGB", fmt: str = "PNG") -> bytes:
    img = Image.new(mode, (width, height), (120, 80, 200, 255)[: len(mode)])
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def _open(content: bytes) -> Image.Image:
    return Image.open(BytesIO(content))


def test_thumbnail_is_cover_cropped_to_1200x800():
    out = _open(process_image_buffer(_make_image(2400, 2400), "thumbnail"))

    assert out.format == "JPEG"
    assert out.size == (1200, 800)


def test_content_image_fits_width_and_keeps_ratio():
    out = _open(process_image_buffer(_make_image(3840, 2160), "content"))

    assert out.size == (1920, 1080)


def test_small_images_are_never_enlarged():
    out = _open(process_image_buffer(_make_image(300, 200), "thumbnail"))

    assert out.size == (300, 200)


def test_transparent_png_is_flattened_to_jpeg():
    out = _open(process_image_buffer(_make_image(100, 100, mode="RGBA"), "content"))

    assert out.format == "JPEG"
    assert out.mode == "RGB"


def test_oversized_output_is_shrunk_to_fallback_width(monkeypatch):
    monkeypatch.setattr(image_processor, "MAX_UPLOAD_BYTES", 1)

    out = _open(process_image_buffer(_make_image(1600, 800), "content"))

    assert out.size == (1200, 600)


def test_undecodable_input_is_returned_unchanged(caplog):
    with caplog.at_level("WARNING"):
        result = process_image_buffer(b"definitely not an image", "content")

    assert result == b"definitely not an image"
    assert any("Could not decode" in r.message for r in caplog.records)
