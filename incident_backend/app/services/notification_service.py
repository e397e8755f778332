"""
Notification Service.

Formats a record into the operator's message template and posts it, with the
record's images attached, to a chat webhook as one multipart request.
"""

import json
import logging
import re
from typing import Dict, List, Optional, Tuple

import httpx

from incident_backend.app.core.exceptions import InvalidImageFormatError, NotificationFailedError
from incident_backend.app.schemas.record import Record
from incident_backend.app.services.images import is_remote_reference, parse_data_url

logger = logging.getLogger(__name__)

MISSING_VALUE = "None"
DATE_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def template_values(record: Record) -> Dict[str, str]:
    """Placeholder name -> rendered text for one record."""
    def text(value: Optional[str]) -> str:
        return value if value else MISSING_VALUE

    return {
        "individualName": record.individual_name,
        "externalId": text(record.external_id),
        "dateTime": record.date_time.strftime(DATE_TIME_FORMAT),
        "location": record.location,
        "reason": record.reason,
        "articles": "\n".join(record.articles) if record.articles else MISSING_VALUE,
        "observations": text(record.observations),
        "seizedItems": text(record.seized_items),
        "responsibleOfficers": record.responsible_officers,
        "createdBy": record.created_by,
    }


def render_message(template: str, record: Record) -> str:
    """
    Substitute `{placeholder}` tokens in `template`.

    Unknown placeholders are left as written.
    """
    values = template_values(record)
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), template)


class NotificationService:
    """Best-effort webhook delivery."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def _attachment(self, index: int, reference: str) -> Tuple[str, Tuple[str, bytes, str]]:
        filename = f"evidence_{index + 1}.jpg"
        if is_remote_reference(reference):
            try:
                response = await self.http_client.get(reference)
                response.raise_for_status()
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise NotificationFailedError(f"Could not fetch image {index + 1} for attachment: {exc}")
            content_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
            return f"files[{index}]", (filename, response.content, content_type)

        try:
            subtype, content = parse_data_url(reference, index=index)
        except InvalidImageFormatError as exc:
            raise NotificationFailedError(f"Image {index + 1} cannot be attached: {exc.message}")
        return f"files[{index}]", (filename, content, f"image/{subtype}")

    async def build_files(self, screenshots: List[str]) -> List[Tuple[str, Tuple[str, bytes, str]]]:
        return [await self._attachment(i, ref) for i, ref in enumerate(screenshots)]

    async def send(self, webhook_url: str, template: str, record: Record) -> int:
        """
        Post `record` to the webhook.

        Returns the HTTP status on 2xx; raises NotificationFailedError for a
        missing URL, a network error or any other status.
        """
        if not webhook_url:
            raise NotificationFailedError("Notification webhook is not configured")

        content = render_message(template, record)
        files = await self.build_files(record.screenshots)

        # Always multipart, text payload first
        parts = [("payload_json", (None, json.dumps({"content": content}), "application/json"))] + files

        try:
            response = await self.http_client.post(webhook_url, files=parts)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Webhook unreachable for record %s: %s", record.id, exc)
            raise NotificationFailedError(f"Notification webhook unreachable: {exc}")

        if not response.is_success:
            logger.warning(
                "Webhook rejected record %s: HTTP %d %s", record.id, response.status_code, response.text[:200]
            )
            raise NotificationFailedError(
                f"Notification webhook returned HTTP {response.status_code}",
                status_code_received=response.status_code,
            )

        logger.info("Record %s sent to webhook with %d attachment(s)", record.id, len(files))
        return response.status_code
