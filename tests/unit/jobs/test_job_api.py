from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from photo_proxy.exceptions import VendorError, VendorTimeoutError
from photo_proxy.jobs.job_models import JobState
from photo_proxy.main import create_app
from photo_proxy.vendors.vendor_registry import AdapterRegistry
from tests.mocks.vendors import PNG_DATA_URI, FakeAdapter, image_result


@pytest.fixture
def registry() -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(FakeAdapter("upscale", supports_webhook=True, required=("image_url",)))
    registry.register(FakeAdapter("colorize", result=image_result("https://vendor.test/c.png", inference=0.5)))
    registry.register(FakeAdapter("train_lora", supports_webhook=True, async_only=True))
    return registry


@pytest.fixture
def client(app_config, registry, storage, push_sender):
    app = create_app(app_config, registry=registry, storage=storage, push_sender=push_sender)
    with TestClient(app) as test_client:
        yield test_client


def _submission(job_type: str = "upscale", **extra) -> dict:
    body = {"jobType": job_type, "parameters": {"image_url": "https://x/in.png"}, "callerId": "u1"}
    body.update(extra)
    return body


def test_healthz(client) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_process_returns_normalized_result(client) -> None:
    response = client.post("/api/process", json=_submission("colorize"))

    assert response.status_code == 200
    body = response.json()
    assert body["images"][0]["url"] == "https://vendor.test/c.png"
    assert body["timings"] == {"inference": 0.5}


def test_process_accepts_legacy_field_names(client) -> None:
    response = client.post(
        "/api/process",
        json={"jobType": "colorize", "apiParams": {"image_url": "https://x/in.png"}, "userId": "u1"},
    )

    assert response.status_code == 200


def test_process_missing_parameters(client) -> None:
    response = client.post("/api/process", json={"jobType": "upscale", "callerId": "u1"})

    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"


def test_process_unknown_job_type(client) -> None:
    response = client.post("/api/process", json=_submission("teleport"))

    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_job_type"


def test_process_invalid_envelope_is_bad_request(client) -> None:
    response = client.post("/api/process", json={"jobType": "upscale", "parameters": "oops", "callerId": "u1"})

    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"


def test_process_rejects_oversized_caller_id(client) -> None:
    response = client.post("/api/process", json=_submission(callerId="x" * 129))

    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"


def test_process_async_only_type(client) -> None:
    response = client.post("/api/process", json=_submission("train_lora"))

    assert response.status_code == 400


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (VendorError("rejected", status=422, body={"detail": "bad image"}), 422, "vendor_error"),
        (VendorError("upstream down", status=503), 502, "vendor_error"),
        (VendorTimeoutError("too slow"), 504, "vendor_timeout"),
        (RuntimeError("boom"), 500, "internal_error"),
    ],
)
def test_process_vendor_failures(app_config, storage, push_sender, error, status_code, code) -> None:
    registry = AdapterRegistry()
    registry.register(FakeAdapter("colorize", error=error))
    app = create_app(app_config, registry=registry, storage=storage, push_sender=push_sender)

    with TestClient(app) as client:
        response = client.post("/api/process", json=_submission("colorize"))

    assert response.status_code == status_code
    assert response.json()["error"] == code


def test_vendor_error_body_is_forwarded(app_config, storage, push_sender) -> None:
    registry = AdapterRegistry()
    registry.register(FakeAdapter("colorize", error=VendorError("rejected", status=422, body={"detail": "x"})))
    app = create_app(app_config, registry=registry, storage=storage, push_sender=push_sender)

    with TestClient(app) as client:
        response = client.post("/api/process", json=_submission("colorize"))

    assert response.json()["details"] == {"detail": "x"}


def test_start_job_acknowledges(client) -> None:
    response = client.post("/api/start-job", json=_submission(jobId="job-a", deviceToken="tok"))

    assert response.status_code == 202
    assert response.json() == {"message": "Job started successfully", "jobId": "job-a"}

    status_response = client.get("/api/jobs/job-a")
    assert status_response.json()["state"] == JobState.PENDING.value


def test_start_job_duplicate_id(client) -> None:
    assert client.post("/api/start-job", json=_submission(jobId="job-b")).status_code == 202

    response = client.post("/api/start-job", json=_submission(jobId="job-b"))

    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_job_id"


def test_complete_job_round_trip(client, push_sender) -> None:
    client.post("/api/start-job", json=_submission(jobId="job-c", deviceToken="tok"))
    delivery = {"status": "OK", "request_id": "r1", "payload": {"image": {"url": PNG_DATA_URI}}}

    first = client.post("/api/complete-job", params={"job_id": "job-c"}, json=delivery)
    second = client.post("/api/complete-job", params={"job_id": "job-c"}, json=delivery)

    assert first.status_code == 200
    assert first.json() == {"status": "processed", "jobId": "job-c", "state": "completed"}
    assert second.status_code == 200
    assert second.json()["status"] == "replay"
    assert len(push_sender.messages) == 1

    job = client.get("/api/jobs/job-c").json()
    assert job["state"] == "completed"
    assert job["resultReference"].startswith("https://cdn.test/processed/u1/")


def test_complete_job_id_in_body(client) -> None:
    client.post("/api/start-job", json=_submission(jobId="job-d"))

    response = client.post(
        "/api/complete-job",
        json={"_internal_job_id": "job-d", "images": [{"url": PNG_DATA_URI}]},
    )

    assert response.status_code == 200
    assert response.json()["state"] == "completed"


def test_complete_job_vendor_error_is_acknowledged(client) -> None:
    client.post("/api/start-job", json=_submission(jobId="job-e"))

    response = client.post(
        "/api/complete-job",
        params={"job_id": "job-e"},
        json={"status": "ERROR", "request_id": "r1", "error": "nsfw content"},
    )

    assert response.status_code == 200
    assert response.json()["state"] == "failed"


def test_complete_job_missing_and_unknown_ids(client) -> None:
    missing = client.post("/api/complete-job", json={"images": []})
    unknown = client.post("/api/complete-job", params={"job_id": "ghost"}, json={"images": []})

    assert missing.status_code == 400
    assert unknown.status_code == 404
    assert client.get("/api/jobs/ghost").status_code == 404


def test_complete_job_storage_failure_is_server_error(client, storage) -> None:
    client.post("/api/start-job", json=_submission(jobId="job-f"))
    storage.fail_writes = True

    response = client.post("/api/complete-job", params={"job_id": "job-f"}, json={"image": {"url": PNG_DATA_URI}})

    assert response.status_code == 500
    assert client.get("/api/jobs/job-f").json()["state"] == "failed"


def test_local_artifacts_are_served(app_config, registry, push_sender) -> None:
    app = create_app(app_config, registry=registry, push_sender=push_sender)
    storage = app.state.storage
    storage.put("processed/u1/a.png", b"png-bytes", "image/png")

    with TestClient(app) as client:
        found = client.get("/public/artifacts/processed/u1/a.png")
        missing = client.get("/public/artifacts/processed/u1/none.png")

    assert found.status_code == 200
    assert found.content == b"png-bytes"
    assert missing.status_code == 404
