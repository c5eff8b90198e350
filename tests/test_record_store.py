"""Tests for the record store HTTP client."""

import json
from datetime import date

import httpx
import pytest

from interview_archiver.errors import (
    ConfigurationError,
    ErrorKind,
    InterviewNotFoundError,
    RecordingAlreadyExistsError,
    RecordStoreError,
)
from interview_archiver.record_store import RecordStoreClient, candidate_name_from

INTERVIEW = {
    "id": 42,
    "candidate_id": 7,
    "candidate": {"full_name": "Jane Doe"},
    "company": "Acme",
    "type_of_interview": "Technical",
    "interview_date": "2024-03-15T10:00:00Z",
    "recording_link": None,
    "backup_recording_url": None,
}


class FakeApi:
    """Routes requests by (method, path) and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found"})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)


def make_client(routes, **kwargs):
    api = FakeApi(routes)
    client = RecordStoreClient(
        "https://records.test/", token="secret", employee_id=3,
        transport=httpx.MockTransport(api), **kwargs,
    )
    return client, api


class TestCandidateName:
    def test_nested_candidate(self):
        assert candidate_name_from({"candidate": {"full_name": "Jane"}}) == "Jane"

    def test_flat_fields(self):
        assert candidate_name_from({"candidate_name": "Ann"}) == "Ann"
        assert candidate_name_from({"full_name": "Bo"}) == "Bo"

    def test_unknown(self):
        assert candidate_name_from({"candidate": None}) == "Unknown"


class TestGetDetails:
    @pytest.mark.asyncio
    async def test_details_parsed(self):
        client, api = make_client({("GET", "/api/interviews/42"): (200, INTERVIEW)})
        async with client:
            details = await client.get_details(42)

        assert details.candidate_name == "Jane Doe"
        assert details.company == "Acme"
        assert details.interview_type == "Technical"
        assert details.interview_date == "2024-03-15T10:00:00Z"
        assert details.candidate_id == 7
        assert api.requests[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_not_found(self):
        client, _ = make_client({})
        async with client:
            with pytest.raises(InterviewNotFoundError) as exc_info:
                await client.get_details(42)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_existing_recording(self):
        body = {**INTERVIEW, "recording_link": "https://drive.test/a", "backup_recording_url": "https://yt.test/b"}
        client, _ = make_client({("GET", "/api/interviews/42"): (200, body)})
        async with client:
            with pytest.raises(RecordingAlreadyExistsError) as exc_info:
                await client.get_details(42)
        assert exc_info.value.existing_link == "https://drive.test/a"
        assert exc_info.value.backup_link == "https://yt.test/b"

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client, _ = make_client({("GET", "/api/interviews/42"): (503, {"detail": "maintenance"})})
        async with client:
            with pytest.raises(RecordStoreError) as exc_info:
                await client.get_details(42)
        assert exc_info.value.kind == ErrorKind.TRANSIENT
        assert str(exc_info.value) == "maintenance"

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client({("GET", "/api/interviews/42"): refuse})
        async with client:
            with pytest.raises(RecordStoreError) as exc_info:
                await client.get_details(42)
        assert exc_info.value.kind == ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        client = RecordStoreClient(None)
        with pytest.raises(ConfigurationError):
            await client.get_details(1)


class TestWriteBack:
    @pytest.mark.asyncio
    async def test_write_back_sends_links_and_logs_activity(self):
        routes = {
            ("PUT", "/api/interviews/42"): (200, {"ok": True}),
            ("GET", "/api/job-types"): (200, [
                {"id": 1, "unique_id": "something_else"},
                {"id": 9, "unique_id": "bot_interview_recording_uploader"},
            ]),
            ("GET", "/api/interviews/42"): (200, INTERVIEW),
            ("POST", "/api/job_activity_logs"): (201, {"id": 1}),
        }
        client, api = make_client(routes)
        async with client:
            await client.write_back(42, "https://drive/x", "https://yt/y", "https://doc/z", "file.mp4")

        put = json.loads(api.requests[0].content)
        assert put == {
            "recording_link": "https://drive/x",
            "backup_recording_url": "https://yt/y",
            "transcript": "https://doc/z",
        }
        activity = json.loads(api.requests[-1].content)
        assert activity["job_id"] == 9
        assert activity["candidate_id"] == 7
        assert activity["employee_id"] == 3
        assert activity["activity_count"] == 1
        assert activity["notes"] == "file.mp4"

    @pytest.mark.asyncio
    async def test_write_back_omits_missing_transcript(self):
        client, api = make_client({("PUT", "/api/interviews/42"): (200, {})})
        async with client:
            await client.write_back(42, "https://drive/x", None, None, "file.mp4")

        put = json.loads(api.requests[0].content)
        assert put == {"recording_link": "https://drive/x", "backup_recording_url": None}

    @pytest.mark.asyncio
    async def test_write_back_not_found(self):
        client, _ = make_client({})
        async with client:
            with pytest.raises(RecordStoreError) as exc_info:
                await client.write_back(42, "a", None, None, "f")
        assert str(exc_info.value) == "Interview not found"
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_write_back_rejected(self):
        client, _ = make_client({("PUT", "/api/interviews/42"): (422, {"detail": "bad link"})})
        async with client:
            with pytest.raises(RecordStoreError) as exc_info:
                await client.write_back(42, "a", None, None, "f")
        assert str(exc_info.value) == "bad link"
        assert exc_info.value.kind == ErrorKind.FATAL


class TestActivityLog:
    @pytest.mark.asyncio
    async def test_missing_job_type_returns_false(self):
        client, api = make_client({("GET", "/api/job-types"): (200, [])})
        async with client:
            assert await client.log_job_activity(42) is False
        assert all(r.method == "GET" for r in api.requests)

    @pytest.mark.asyncio
    async def test_uses_given_date_and_default_note(self):
        routes = {
            ("GET", "/api/job-types"): (200, [{"id": 9, "unique_id": "bot_interview_recording_uploader"}]),
            ("GET", "/api/interviews/42"): (200, INTERVIEW),
            ("POST", "/api/job_activity_logs"): (201, {}),
        }
        client, api = make_client(routes)
        async with client:
            assert await client.log_job_activity(42, today=date(2024, 3, 16)) is True

        activity = json.loads(api.requests[-1].content)
        assert activity["activity_date"] == "2024-03-16"
        assert activity["notes"] == "Interview ID 42 recording uploaded"

    @pytest.mark.asyncio
    async def test_failure_never_raises(self):
        def explode(request):
            raise httpx.ReadTimeout("slow", request=request)

        client, _ = make_client({("GET", "/api/job-types"): explode})
        async with client:
            assert await client.log_job_activity(42) is False


class TestConnection:
    @pytest.mark.asyncio
    async def test_connection_ok(self):
        client, _ = make_client({("GET", "/api/interviews"): (200, [])})
        async with client:
            assert await client.test_connection() is True

    @pytest.mark.asyncio
    async def test_connection_failed(self):
        client = RecordStoreClient(None)
        assert await client.test_connection() is False
