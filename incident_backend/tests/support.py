"""
Test doubles and factories shared by the test modules.
"""

import base64
import io
import json
import random
import uuid
from datetime import datetime, timezone

import httpx
from PIL import Image
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from incident_backend.app.core.permissions import CallerSession
from incident_backend.app.models.enums import UserRole
from incident_backend.app.schemas.record import Record, SubmissionRequest

BUCKET_BASE_URL = "http://storage.test/storage/v1"
BUCKET = "incident-photos"
WEBHOOK_URL = "http://hooks.test/api/webhooks/1/abc"


# Mock Redis for the local backend
class MockRedis:
    def __init__(self):
        self.store = {}
        self.set_calls = 0
        self.fail_reads = False
        self.fail_writes = False
        self.oom = False

    async def ping(self):
        return True

    async def get(self, key):
        if self.fail_reads:
            raise RedisConnectionError("Connection refused")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail_writes:
            raise RedisConnectionError("Connection refused")
        if self.oom:
            raise ResponseError("OOM command not allowed when used memory > 'maxmemory'.")
        self.set_calls += 1
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        pass


class FakeRemoteServices:
    """
    Request handler for httpx.MockTransport.

    Serves the Supabase-style bucket API on storage.test and a webhook on
    hooks.test. Every request is kept in `requests`.
    """

    def __init__(self):
        self.objects = {}
        self.requests = []
        self.webhook_requests = []
        self.webhook_status = 200
        self.webhook_unreachable = False
        self.fail_uploads = False
        self.fail_deletes = False
        self.upload_failures_after = None

    def _bucket_path(self, request: httpx.Request) -> str:
        return request.url.path.split(f"/storage/v1/object/{BUCKET}/", 1)[1]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "hooks.test":
            if self.webhook_unreachable:
                raise httpx.ConnectError("Connection refused", request=request)
            self.webhook_requests.append(request)
            return httpx.Response(self.webhook_status, json={"ok": self.webhook_status < 300})

        if path.startswith(f"/storage/v1/object/public/{BUCKET}/"):
            name = path.rsplit("/", 1)[1]
            if name not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, content=self.objects[name], headers={"content-type": "image/jpeg"})

        if request.method == "POST" and path == f"/storage/v1/object/list/{BUCKET}":
            body = json.loads(request.content)
            names = sorted(self.objects)[body["offset"]: body["offset"] + body["limit"]]
            return httpx.Response(
                200, json=[{"name": n, "metadata": {"size": len(self.objects[n])}} for n in names]
            )

        if request.method == "POST" and path.startswith(f"/storage/v1/object/{BUCKET}/"):
            if self.fail_uploads:
                return httpx.Response(500, json={"error": "storage down"})
            if self.upload_failures_after is not None and len(self.objects) >= self.upload_failures_after:
                return httpx.Response(500, json={"error": "storage down"})
            self.objects[self._bucket_path(request)] = request.content
            return httpx.Response(200, json={"Key": f"{BUCKET}/{self._bucket_path(request)}"})

        if request.method == "DELETE" and path == f"/storage/v1/object/{BUCKET}":
            if self.fail_deletes:
                return httpx.Response(503)
            for name in json.loads(request.content)["prefixes"]:
                self.objects.pop(name, None)
            return httpx.Response(200, json=[])

        return httpx.Response(404)


def multipart_field_names(request: httpx.Request) -> list:
    """Form field names of a multipart request, in order."""
    content = request.content.decode("latin-1")
    return [part.split('"', 2)[1] for part in content.split('Content-Disposition: form-data; name=')[1:]]


def multipart_payload(request: httpx.Request) -> dict:
    content = request.content.decode("latin-1")
    section = content.split('name="payload_json"', 1)[1]
    body = section.split("\r\n\r\n", 1)[1].split("\r\n--", 1)[0]
    return json.loads(body.encode("latin-1").decode("utf-8"))


# Images

def image_data_url(width: int, height: int, image_format: str = "PNG", noise: bool = False) -> str:
    if noise:
        image = Image.frombytes("RGB", (width, height), random.Random(width * height).randbytes(width * height * 3))
    else:
        image = Image.merge("RGB", (
            Image.linear_gradient("L").resize((width, height)),
            Image.radial_gradient("L").resize((width, height)),
            Image.new("L", (width, height), 128),
        ))
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    subtype = image_format.lower()
    return f"data:image/{subtype};base64,{base64.b64encode(buffer.getvalue()).decode('ascii')}"


def decoded_size(data_url: str) -> int:
    return len(base64.b64decode(data_url.split(",", 1)[1]))


# Sessions

def make_session(role: UserRole, username: str = None, is_owner: bool = False) -> CallerSession:
    username = username or f"{role.value}_user"
    return CallerSession(user_id=str(uuid.uuid4()), username=username, role=role, is_owner=is_owner)



# Records

def make_record(name: str = "Alex Doe", created_by: str = "officer_user", **overrides) -> Record:
    now = datetime.now(timezone.utc)
    values = dict(
        id=str(uuid.uuid4()),
        individual_name=name,
        date_time=now,
        location="Main Street",
        reason="Disturbance",
        articles=["A1"],
        responsible_officers="Sgt. Smith",
        created_by=created_by,
        created_at=now,
    )
    values.update(overrides)
    return Record(**values)


def make_submission(**overrides) -> SubmissionRequest:
    values = dict(
        individual_name="Alex Doe",
        location="Main Street",
        reason="Disturbance",
        articles=["A1"],
        responsible_officers="Sgt. Smith",
    )
    values.update(overrides)
    return SubmissionRequest(**values)


