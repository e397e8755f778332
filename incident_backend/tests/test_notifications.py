"""
Webhook dispatcher tests: template rendering and multipart delivery.
"""

from datetime import datetime, timezone

import pytest

from incident_backend.app.core.exceptions import NotificationFailedError
from incident_backend.app.schemas.admin import DEFAULT_MESSAGE_TEMPLATE
from incident_backend.app.services.notification_service import NotificationService, render_message
from incident_backend.tests.support import (
    WEBHOOK_URL,
    make_record,
    multipart_field_names,
    multipart_payload,
)


def test_render_substitutes_all_placeholders():
    record = make_record(
        name="Alex Doe",
        external_id="X-1",
        date_time=datetime(2024, 3, 9, 14, 5, 7, tzinfo=timezone.utc),
        articles=["A1", "A2"],
        observations="Calm",
        seized_items="Knife",
        created_by="officer_user",
    )

    message = render_message(DEFAULT_MESSAGE_TEMPLATE, record)

    assert "Alex Doe" in message
    assert "X-1" in message
    assert "09/03/2024 14:05:07" in message
    assert "A1\nA2" in message
    assert "Knife" in message
    assert "officer_user" in message
    assert "{" not in message


def test_render_missing_optionals_become_none():
    record = make_record(external_id=None, observations=None, seized_items=None, articles=[])
    message = render_message("{externalId}|{observations}|{seizedItems}|{articles}", record)
    assert message == "None|None|None|None"


def test_render_leaves_unknown_placeholders():
    assert render_message("{individualName} {unknown}", make_record()) == "Alex Doe {unknown}"


async def test_send_posts_payload_and_files(http_client, remote_services, small_image):
    record = make_record(screenshots=[small_image, small_image])

    status = await NotificationService(http_client).send(WEBHOOK_URL, "Suspect: {individualName}", record)

    assert status == 200
    request = remote_services.webhook_requests[0]
    assert request.method == "POST"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert multipart_field_names(request) == ["payload_json", "files[0]", "files[1]"]
    assert multipart_payload(request) == {"content": "Suspect: Alex Doe"}
    assert b'filename="evidence_1.jpg"' in request.content


async def test_send_fetches_remote_images_first(http_client, remote_services, remote_backend, small_image):
    stored = await remote_backend.create_record(make_record(screenshots=[small_image]))

    await NotificationService(http_client).send(WEBHOOK_URL, "{individualName}", stored)

    fetch = [r for r in remote_services.requests if r.method == "GET"]
    assert len(fetch) == 1
    assert multipart_field_names(remote_services.webhook_requests[0]) == ["payload_json", "files[0]"]


async def test_non_2xx_raises_notification_failed(http_client, remote_services):
    remote_services.webhook_status = 500

    with pytest.raises(NotificationFailedError) as exc_info:
        await NotificationService(http_client).send(WEBHOOK_URL, "{individualName}", make_record())

    assert exc_info.value.error_code == "NOTIFICATION_FAILED"
    assert exc_info.value.details == {"webhook_status": 500}


async def test_network_error_raises_notification_failed(http_client, remote_services):
    remote_services.webhook_unreachable = True
    with pytest.raises(NotificationFailedError):
        await NotificationService(http_client).send(WEBHOOK_URL, "{individualName}", make_record())


async def test_missing_webhook_url(http_client, remote_services):
    with pytest.raises(NotificationFailedError):
        await NotificationService(http_client).send("", "{individualName}", make_record())
    assert remote_services.requests == []
