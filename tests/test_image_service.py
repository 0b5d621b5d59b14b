"""Tests for validation, hashing and variant rendering."""
import io
from unittest.mock import patch

import pytest
from PIL import Image as PILImage, ImageFile

from image_ingest.errors import CorruptImage, InvalidFile
from image_ingest.services import image_service

SIZES = {"thumb": 150, "small": 300, "medium": 600, "large": 1200}


def test_validate_accepts_allowed_types(image_bytes):
    data = image_bytes(size=(10, 10))
    for mime in ("image/jpeg", "image/jpg", "image/png", "image/webp", "IMAGE/JPEG"):
        image_service.validate_upload(data, mime)


def test_validate_rejects_other_types(image_bytes):
    with pytest.raises(InvalidFile, match="Only JPEG, PNG, and WebP"):
        image_service.validate_upload(image_bytes(size=(10, 10)), "image/gif")


def test_validate_rejects_oversized():
    with pytest.raises(InvalidFile, match="less than 1MB"):
        image_service.validate_upload(
            b"x" * (1024 * 1024 + 1), "image/jpeg", max_size=1024 * 1024
        )


def test_validate_rejects_empty_and_size_mismatch():
    with pytest.raises(InvalidFile, match="empty"):
        image_service.validate_upload(b"", "image/png")
    with pytest.raises(InvalidFile, match="Declared size"):
        image_service.validate_upload(b"abc", "image/png", declared_size=10)


def test_content_hash_depends_only_on_bytes(image_bytes):
    data = image_bytes()
    assert image_service.content_hash(data) == image_service.content_hash(bytes(data))
    assert len(image_service.content_hash(data)) == 64
    assert image_service.content_hash(data) != image_service.content_hash(data + b"\0")


def test_generate_variants_fits_each_box(image_bytes):
    variant_set = image_service.generate_variants(image_bytes(size=(2000, 1000)), SIZES)

    assert [v.size for v in variant_set] == ["thumb", "small", "medium", "large"]
    assert (variant_set["thumb"].width, variant_set["thumb"].height) == (150, 75)
    assert (variant_set["large"].width, variant_set["large"].height) == (1200, 600)
    for variant in variant_set:
        assert variant.mime_type == "image/webp"
        decoded = PILImage.open(io.BytesIO(variant.data))
        assert decoded.format == "WEBP"
        assert decoded.size == (variant.width, variant.height)


def test_generate_variants_never_upscales(image_bytes):
    variant_set = image_service.generate_variants(image_bytes(size=(400, 200)), SIZES)

    assert (variant_set["small"].width, variant_set["small"].height) == (300, 150)
    assert (variant_set["medium"].width, variant_set["medium"].height) == (400, 200)
    assert (variant_set["large"].width, variant_set["large"].height) == (400, 200)


def test_generate_variants_keeps_alpha_for_png(image_bytes):
    img = PILImage.new("RGBA", (500, 500), (0, 0, 255, 128))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")

    variant_set = image_service.generate_variants(buffer.getvalue(), SIZES)
    decoded = PILImage.open(io.BytesIO(variant_set["small"].data))
    assert decoded.mode == "RGBA"


def test_text_bytes_are_corrupt():
    with pytest.raises(CorruptImage):
        image_service.generate_variants(b"just some text pretending to be a jpeg", SIZES)


def test_truncated_image_is_corrupt(image_bytes):
    data = image_bytes()
    with pytest.raises(CorruptImage):
        image_service.generate_variants(data[: len(data) // 3], SIZES)


def test_pixel_cap_checked_before_load(image_bytes):
    data = image_bytes(size=(400, 300))
    with patch.object(ImageFile.ImageFile, "load") as load:
        with pytest.raises(InvalidFile, match="400x300"):
            image_service.decode_image(data, max_pixels=100_000)
    load.assert_not_called()


def test_decompression_bomb_is_invalid(image_bytes, monkeypatch):
    data = image_bytes(size=(200, 100))
    monkeypatch.setattr(PILImage, "MAX_IMAGE_PIXELS", 5_000)

    with pytest.raises(InvalidFile, match="too large"):
        image_service.generate_variants(data, SIZES, max_pixels=None)
    with pytest.raises(InvalidFile, match="too large"):
        image_service.render_single(data, (1200, 600), max_pixels=None)


def test_one_failed_rendition_fails_the_set(image_bytes):
    real_encode = image_service._encode

    def flaky(img, box, fmt, quality):
        if box == (1200, 1200):
            raise OSError("encoder crashed")
        return real_encode(img, box, fmt, quality)

    with patch.object(image_service, "_encode", side_effect=flaky):
        with pytest.raises(CorruptImage, match="encoder crashed"):
            image_service.generate_variants(image_bytes(), SIZES)


def test_variant_set_requires_all_sizes():
    partial = [
        image_service.EncodedVariant(tag, b"", 1, 1, "image/webp", "webp")
        for tag in ("thumb", "small", "medium")
    ]
    with pytest.raises(ValueError):
        image_service.VariantSet(partial)


def test_render_single_fits_slot_box(image_bytes):
    variant = image_service.render_single(image_bytes(size=(2400, 800)), (1200, 600))
    assert (variant.width, variant.height) == (1200, 400)
