"""
Image normalization pipeline.

Turns arbitrarily large pasted or uploaded photos into bounded JPEG data URLs
before they reach either sink. Pillow work is CPU bound and runs in a worker
thread.
"""

import asyncio
import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import AbstractSet, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from incident_backend.app.core.exceptions import InvalidImageFormatError

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:image/(?P<subtype>[A-Za-z0-9.+-]+);base64,(?P<payload>.*)$", re.DOTALL)


def is_remote_reference(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def parse_data_url(value: str, index: Optional[int] = None) -> Tuple[str, bytes]:
    """
    Split an image data URL into (subtype, raw bytes).

    Raises InvalidImageFormatError for anything that is not a base64
    `data:image/...` value.
    """
    match = DATA_URL_PATTERN.match(value or "")
    if not match:
        raise InvalidImageFormatError("Image must be a data:image/...;base64 value", index=index)
    try:
        content = base64.b64decode("".join(match.group("payload").split()), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImageFormatError("Image payload is not valid base64", index=index)
    if not content:
        raise InvalidImageFormatError("Image payload is empty", index=index)
    return match.group("subtype").lower(), content


def to_data_url(content: bytes, subtype: str = "jpeg") -> str:
    return f"data:image/{subtype};base64,{base64.b64encode(content).decode('ascii')}"


def check_image_reference(
    value: str,
    index: Optional[int] = None,
    stored_urls: AbstractSet[str] = frozenset(),
) -> None:
    """
    Reject a value before it enters the pipeline.

    Only image data URLs are accepted, plus http(s) references that are
    already among `stored_urls` (images a record holds in the bucket).
    """
    if isinstance(value, str) and is_remote_reference(value):
        if value in stored_urls:
            return
        raise InvalidImageFormatError("Image URLs are only accepted for images already stored", index=index)
    parse_data_url(value, index=index)


@dataclass
class TranscodeResult:
    content: bytes
    width: int
    height: int
    quality: int


class ImagePipeline:
    """
    Resize and re-encode images until they fit `max_bytes`.

    Quality is tracked in whole percent (0.7 -> 70).
    """

    def __init__(
        self,
        max_dimension: int = 1920,
        max_bytes: int = 512 * 1024,
        start_quality: float = 0.7,
        quality_step: float = 0.1,
        quality_floor: float = 0.1,
        decode_fallback: bool = False,
    ):
        self.max_dimension = max_dimension
        self.max_bytes = max_bytes
        self.start_quality = int(round(start_quality * 100))
        self.quality_step = max(1, int(round(quality_step * 100)))
        self.quality_floor = int(round(quality_floor * 100))
        self.decode_fallback = decode_fallback

    @classmethod
    def from_settings(cls, settings) -> "ImagePipeline":
        return cls(
            max_dimension=settings.image_max_dimension,
            max_bytes=settings.image_max_bytes,
            start_quality=settings.image_start_quality,
            quality_step=settings.image_quality_step,
            quality_floor=settings.image_quality_floor,
            decode_fallback=settings.image_decode_fallback,
        )

    def _scaled_size(self, width: int, height: int) -> Tuple[int, int]:
        longest = max(width, height)
        if longest <= self.max_dimension:
            return width, height
        ratio = self.max_dimension / longest
        return max(1, round(width * ratio)), max(1, round(height * ratio))

    def transcode(self, content: bytes) -> TranscodeResult:
        """Synchronous resize + quality loop. Raises PIL errors on bad input."""
        with Image.open(io.BytesIO(content)) as source:
            source.load()
            image = source.convert("RGB")

        size = self._scaled_size(*image.size)
        if size != image.size:
            image = image.resize(size, Image.Resampling.LANCZOS)

        quality = self.start_quality
        encoded = self._encode(image, quality)
        while len(encoded) > self.max_bytes and quality > self.quality_floor:
            quality = max(self.quality_floor, quality - self.quality_step)
            encoded = self._encode(image, quality)

        return TranscodeResult(content=encoded, width=image.width, height=image.height, quality=quality)

    @staticmethod
    def _encode(image: Image.Image, quality: int) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality, optimize=True)
        return buffer.getvalue()

    async def normalize(
        self,
        value: str,
        index: Optional[int] = None,
        stored_urls: AbstractSet[str] = frozenset(),
    ) -> str:
        """
        Normalize one image reference.

        References in `stored_urls` are returned untouched; any other http(s)
        value is rejected. Data URLs come back as a JPEG data URL within
        budget, or as the original value when even the quality floor cannot
        shrink it below the input size.
        """
        check_image_reference(value, index=index, stored_urls=stored_urls)
        if is_remote_reference(value):
            return value

        _, content = parse_data_url(value, index=index)
        try:
            result = await asyncio.to_thread(self.transcode, content)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            if self.decode_fallback:
                logger.warning("Image %s could not be decoded, keeping original: %s", index, exc)
                return value
            raise InvalidImageFormatError(f"Image could not be decoded: {exc}", index=index)

        if len(result.content) > self.max_bytes and len(result.content) >= len(content):
            logger.info(
                "Image %s still %d bytes at quality floor, keeping %d byte original",
                index, len(result.content), len(content),
            )
            return value

        logger.debug(
            "Image %s normalized: %d -> %d bytes (%dx%d, q=%d)",
            index, len(content), len(result.content), result.width, result.height, result.quality,
        )
        return to_data_url(result.content)

    async def normalize_all(self, values: Sequence[str], stored_urls: AbstractSet[str] = frozenset()) -> List[str]:
        for index, value in enumerate(values):
            check_image_reference(value, index=index, stored_urls=stored_urls)
        return list(await asyncio.gather(
            *(self.normalize(v, index=i, stored_urls=stored_urls) for i, v in enumerate(values))
        ))
