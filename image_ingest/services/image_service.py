import hashlib
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from PIL import Image as PILImage, ImageOps, UnidentifiedImageError

from image_ingest.errors import CorruptImage, InvalidFile
from image_ingest.models.image import VARIANT_TAGS

logger = logging.getLogger(__name__)


ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB
MAX_PIXELS = 40_000_000

OUTPUT_MIME_TYPES = {"WEBP": "image/webp", "JPEG": "image/jpeg", "PNG": "image/png"}
OUTPUT_EXTENSIONS = {"WEBP": "webp", "JPEG": "jpg", "PNG": "png"}


@dataclass(frozen=True)
class EncodedVariant:
    size: str
    data: bytes
    width: int
    height: int
    mime_type: str
    extension: str


class VariantSet:
    """Exactly one encoded variant per size tag, or nothing at all."""

    def __init__(self, variants):
        by_size = {v.size: v for v in variants}
        if len(by_size) != len(variants) or set(by_size) != set(VARIANT_TAGS):
            raise ValueError(
                f"Variant set must contain exactly {VARIANT_TAGS}, got {sorted(by_size)}"
            )
        self._by_size = by_size

    def __getitem__(self, size):
        return self._by_size[size]

    def __iter__(self):
        return (self._by_size[tag] for tag in VARIANT_TAGS)

    def __len__(self):
        return len(self._by_size)


def validate_upload(data, mime_type, declared_size=None,
                    allowed_types=ALLOWED_CONTENT_TYPES, max_size=MAX_FILE_SIZE):
    """Cheap checks on an upload before any hashing or decoding.

    Raises:
        InvalidFile with a human-readable reason
    """
    if not data:
        raise InvalidFile("Image file is empty", stage="validate")
    if declared_size is not None and declared_size != len(data):
        raise InvalidFile(
            f"Declared size {declared_size} does not match received {len(data)} bytes",
            stage="validate",
        )
    if len(data) > max_size:
        raise InvalidFile(
            f"Image file size must be less than {max_size // (1024 * 1024)}MB",
            stage="validate",
        )
    if (mime_type or "").lower() not in allowed_types:
        raise InvalidFile("Only JPEG, PNG, and WebP images are allowed", stage="validate")


def content_hash(data):
    """SHA-256 hex digest of the raw upload bytes."""
    return hashlib.sha256(data).hexdigest()


def _check_pixels(size, max_pixels):
    width, height = size
    if max_pixels and width * height > max_pixels:
        raise InvalidFile(
            f"Image dimensions {width}x{height} exceed the {max_pixels} pixel limit",
            stage="decode",
        )


def decode_image(data, max_pixels=MAX_PIXELS):
    """Decode bytes into a loaded, upright Pillow image.

    The pixel count is checked from the header before anything is loaded.

    Raises:
        InvalidFile if the image has more than ``max_pixels`` pixels
        CorruptImage if the bytes are not a readable image
    """
    try:
        probe = PILImage.open(io.BytesIO(data))
        _check_pixels(probe.size, max_pixels)
        probe.verify()  # verify it's a real image
        # Re-open (verify() leaves the image unusable)
        img = PILImage.open(io.BytesIO(data))
        img.load()
    except PILImage.DecompressionBombError as e:
        raise InvalidFile(f"Image dimensions are too large: {e}", stage="decode")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise CorruptImage(f"Invalid image file: {e}", stage="decode")

    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "RGBA"):
        has_alpha = "A" in img.getbands() or "transparency" in img.info
        img = img.convert("RGBA" if has_alpha else "RGB")
    return img


def _encode(img, box, fmt, quality):
    """Fit ``img`` inside ``box`` without upscaling and encode it."""
    rendition = img.copy()
    rendition.thumbnail(box, PILImage.Resampling.LANCZOS)
    if fmt == "JPEG" and rendition.mode != "RGB":
        rendition = rendition.convert("RGB")
    buffer = io.BytesIO()
    rendition.save(buffer, format=fmt, quality=quality)
    return buffer.getvalue(), rendition.size


def generate_variants(data, sizes, fmt="WEBP", quality=85, max_workers=2,
                      max_pixels=MAX_PIXELS):
    """Decode once and render every configured size in a bounded pool.

    ``sizes`` maps size tag to the longest side in px. If any rendition
    fails the whole call fails; no partial set is returned.

    Returns:
        VariantSet
    """
    img = decode_image(data, max_pixels)
    mime_type = OUTPUT_MIME_TYPES[fmt]
    extension = OUTPUT_EXTENSIONS[fmt]

    def render(tag):
        edge = sizes[tag]
        encoded, (width, height) = _encode(img, (edge, edge), fmt, quality)
        return EncodedVariant(tag, encoded, width, height, mime_type, extension)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(render, tag) for tag in VARIANT_TAGS]
        try:
            variants = [f.result() for f in futures]
        except Exception as e:
            for f in futures:
                f.cancel()
            logger.exception("Variant rendering failed")
            raise CorruptImage(f"Failed to process image: {e}", stage="generate")

    return VariantSet(variants)


def render_single(data, box, fmt="WEBP", quality=85, max_pixels=MAX_PIXELS):
    """Render one rendition fitted inside ``box`` (site slot images)."""
    img = decode_image(data, max_pixels)
    try:
        encoded, (width, height) = _encode(img, box, fmt, quality)
    except (OSError, ValueError) as e:
        raise CorruptImage(f"Failed to process image: {e}", stage="generate")
    return EncodedVariant(
        "single", encoded, width, height,
        OUTPUT_MIME_TYPES[fmt], OUTPUT_EXTENSIONS[fmt],
    )
