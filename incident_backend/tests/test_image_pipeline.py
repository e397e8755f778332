"""
Image pipeline tests: format gate, resize, byte budget and decode failures.
"""

import base64
import io

import pytest
from PIL import Image

from incident_backend.app.core.exceptions import InvalidImageFormatError
from incident_backend.app.services.images import (
    ImagePipeline,
    check_image_reference,
    parse_data_url,
)
from incident_backend.tests.support import decoded_size, image_data_url


def open_data_url(data_url: str) -> Image.Image:
    _, content = parse_data_url(data_url)
    return Image.open(io.BytesIO(content))


@pytest.mark.parametrize(
    "value",
    [
        "not an image",
        "",
        "data:text/plain;base64,aGVsbG8=",
        "data:image/png;base64,***",
        "ftp://example.com/a.jpg",
        "https://cdn.example.com/a.jpg",
        "http://169.254.169.254/latest/meta-data",
    ],
)
def test_rejects_unrecognized_values(value):
    with pytest.raises(InvalidImageFormatError):
        check_image_reference(value, index=0)


def test_stored_remote_references_pass_untouched():
    url = "https://cdn.example.com/a.jpg"
    check_image_reference(url, stored_urls={url})


def test_remote_reference_not_already_stored_is_rejected():
    with pytest.raises(InvalidImageFormatError) as exc_info:
        check_image_reference("https://cdn.example.com/b.jpg", index=1, stored_urls={"https://cdn.example.com/a.jpg"})
    assert exc_info.value.details == {"index": 1}


async def test_remote_reference_not_reencoded(pipeline):
    url = "https://cdn.example.com/object/public/incident-photos/a.jpg"
    assert await pipeline.normalize(url, stored_urls={url}) == url


async def test_oversized_image_is_resized_and_within_budget(pipeline, oversized_image):
    result = await pipeline.normalize(oversized_image)

    assert result.startswith("data:image/jpeg;base64,")
    assert decoded_size(result) <= pipeline.max_bytes
    image = open_data_url(result)
    assert image.format == "JPEG"
    assert image.size == (1920, 1280)


async def test_small_image_keeps_dimensions(pipeline, small_image):
    result = await pipeline.normalize(small_image)
    assert open_data_url(result).size == (64, 48)


async def test_aspect_ratio_preserved_for_portrait():
    pipeline = ImagePipeline(max_dimension=200)
    result = await pipeline.normalize(image_data_url(300, 600))
    assert open_data_url(result).size == (100, 200)


async def test_quality_steps_down_until_budget_or_floor():
    noisy = image_data_url(300, 300, noise=True)
    pipeline = ImagePipeline(max_bytes=15_000)

    result = pipeline.transcode(parse_data_url(noisy)[1])

    assert len(result.content) <= pipeline.max_bytes or result.quality == pipeline.quality_floor
    assert result.quality < pipeline.start_quality


async def test_output_never_exceeds_input_at_floor():
    tiny = image_data_url(1, 1)
    pipeline = ImagePipeline(max_bytes=10)

    result = await pipeline.normalize(tiny)

    # JPEG overhead makes any re-encode bigger than this input
    assert result == tiny


async def test_output_bounded_for_any_input():
    pipeline = ImagePipeline(max_bytes=20_000)
    for source in (image_data_url(400, 400, noise=True), image_data_url(800, 600), image_data_url(2, 2)):
        result = await pipeline.normalize(source)
        assert decoded_size(result) <= max(pipeline.max_bytes, decoded_size(source))


async def test_undecodable_payload_rejected_by_default(pipeline):
    garbage = "data:image/png;base64," + base64.b64encode(b"definitely not a png").decode()
    with pytest.raises(InvalidImageFormatError) as exc_info:
        await pipeline.normalize(garbage, index=2)
    assert exc_info.value.details == {"index": 2}


async def test_undecodable_payload_passes_through_with_fallback():
    garbage = "data:image/png;base64," + base64.b64encode(b"definitely not a png").decode()
    pipeline = ImagePipeline(decode_fallback=True)
    assert await pipeline.normalize(garbage) == garbage


async def test_normalize_all_checks_every_value_first(pipeline, small_image):
    with pytest.raises(InvalidImageFormatError) as exc_info:
        await pipeline.normalize_all([small_image, "bogus"])
    assert exc_info.value.details == {"index": 1}


async def test_normalize_all_keeps_order(pipeline, small_image):
    url = "https://cdn.example.com/a.jpg"
    results = await pipeline.normalize_all([url, small_image], stored_urls={url})
    assert results[0] == url
    assert results[1].startswith("data:image/jpeg;base64,")
