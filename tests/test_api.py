"""HTTP surface: /v1/identify, /v1/scan and settings endpoints."""

import pytest
from fastapi.testclient import TestClient

from snapshop.api import routes_identify
from snapshop.core import catalog
from snapshop.core.capture import FileCaptureSource, NullCaptureSource
from snapshop.core.config import settings
from snapshop.main import create_app, default_capture_source
from snapshop.schemas.identify import FailureReason, IdentificationFailure, IdentificationSuccess

JORDAN = IdentificationSuccess(name="Air Jordan 1 Retro High OG", brand="Nike", price="$170.00", confidence="98%")
CATALOG_NAMES = {e.name for e in catalog.CATALOG}


@pytest.fixture
def scan_client(fake_client):
    return fake_client(JORDAN)


@pytest.fixture
def orchestrator(make_orchestrator, scan_client):
    return make_orchestrator(scan_client, live=False)


@pytest.fixture
def client(orchestrator):
    return TestClient(create_app(orchestrator=orchestrator))


def _upload():
    return {"image": ("shoe.jpg", b"\xff\xd8\xff\xe0jpeg-bytes\xff\xd9", "image/jpeg")}


class TestMeta:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True}

    def test_version(self, client):
        assert "version" in client.get("/version").json()


class TestScanEndpoint:
    def test_demo_scan_without_image(self, client, scan_client):
        r = client.post("/v1/scan")
        assert r.status_code == 200
        body = r.json()
        assert body["phase"] == "settled"
        assert body["view"] == "results"
        assert body["progress"] == 100
        assert body["is_scanning"] is False
        assert body["result"]["ai_powered"] is False
        assert body["result"]["name"] in CATALOG_NAMES
        assert [l["store"] for l in body["links"]] == ["Google Shopping", "eBay", "Amazon"]
        assert scan_client.calls == []

    def test_scan_with_image_and_custom_key(self, client, scan_client):
        client.put("/v1/settings/key", json={"key": "user-key"})

        r = client.post("/v1/scan", files=_upload())

        body = r.json()
        assert body["phase"] == "settled"
        assert body["result"]["ai_powered"] is True
        assert body["result"]["name"] == "Air Jordan 1 Retro High OG"
        assert body["result"]["image"].startswith("data:image/jpeg;base64,")
        assert "Air%20Jordan%201" in body["links"][0]["url"]
        image, credential = scan_client.calls[0]
        assert credential.value == "user-key"
        assert credential.user_supplied

    def test_scan_with_image_and_no_key_asks_for_one(self, orchestrator):
        from snapshop.core.gemini import GeminiClient

        orchestrator.client = GeminiClient()
        client = TestClient(create_app(orchestrator=orchestrator))

        body = client.post("/v1/scan", files=_upload()).json()

        assert body["phase"] == "failed"
        assert "Key is missing" in body["error_message"]
        assert body["show_settings"] is True
        assert body["result"] is None
        assert body["links"] == []

    def test_user_key_error_is_surfaced(self, orchestrator, fake_client, client):
        orchestrator.client = fake_client(
            IdentificationFailure(reason=FailureReason.TRANSPORT_OR_SERVICE_ERROR, detail="API Error: 500 boom")
        )
        client.put("/v1/settings/key", json={"key": "user-key"})

        body = client.post("/v1/scan", files=_upload()).json()

        assert body["phase"] == "failed"
        assert body["error_message"] == "API Error: 500 boom"
        assert body["view"] == "camera"

    def test_scan_without_image_uses_capture_file(self, orchestrator, scan_client, monkeypatch, tmp_path):
        frame = tmp_path / "counter.jpg"
        frame.write_bytes(b"\xff\xd8\xff\xe0counter-cam\xff\xd9")
        monkeypatch.setattr(settings, "CAPTURE_FILE", str(frame))
        client = TestClient(create_app(orchestrator=orchestrator))
        client.put("/v1/settings/key", json={"key": "user-key"})

        body = client.post("/v1/scan").json()

        assert body["phase"] == "settled"
        assert body["result"]["ai_powered"] is True
        assert len(scan_client.calls) == 1
        assert scan_client.calls[0][0].data == frame.read_bytes()

    def test_default_capture_source(self, tmp_path):
        assert isinstance(default_capture_source(""), NullCaptureSource)
        assert isinstance(default_capture_source(str(tmp_path / "cam.jpg")), FileCaptureSource)

    def test_busy_returns_409(self, client, orchestrator):
        orchestrator._active_generation = orchestrator.state.generation
        r = client.post("/v1/scan")
        assert r.status_code == 409
        assert r.json()["detail"]["error"] == "scan_in_progress"

    def test_state_and_reset(self, client):
        client.post("/v1/scan")
        assert client.get("/v1/scan/state").json()["phase"] == "settled"

        body = client.post("/v1/scan/reset").json()
        assert body["phase"] == "idle"
        assert body["view"] == "home"
        assert body["result"] is None
        assert body["progress"] == 0

    def test_key_set_and_clear(self, client):
        body = client.put("/v1/settings/key", json={"key": " k "}).json()
        assert body["has_custom_key"] is True
        assert body["show_settings"] is False
        assert "custom_key" not in body

        body = client.delete("/v1/settings/key").json()
        assert body["has_custom_key"] is False


class FakeGemini:
    def __init__(self, outcome):
        self.outcome = outcome
        self.credentials = []

    async def identify(self, image, credential):
        self.credentials.append(credential)
        return self.outcome


class TestIdentifyEndpoint:
    def _patch(self, monkeypatch, outcome):
        fake = FakeGemini(outcome)
        monkeypatch.setattr(routes_identify, "GeminiClient", lambda: fake)
        return fake

    def test_success(self, client, monkeypatch):
        fake = self._patch(monkeypatch, JORDAN)
        r = client.post("/v1/identify", files=_upload(), headers={"X-Gemini-Key": "hdr-key"})
        assert r.status_code == 200
        assert r.json()["brand"] == "Nike"
        assert fake.credentials[0].value == "hdr-key"
        assert fake.credentials[0].user_supplied

    @pytest.mark.parametrize(
        "reason,status",
        [
            (FailureReason.CREDENTIAL_INVALID, 401),
            (FailureReason.TRANSPORT_OR_SERVICE_ERROR, 502),
            (FailureReason.MALFORMED_RESPONSE, 422),
        ],
    )
    def test_failures_map_to_status(self, client, monkeypatch, reason, status):
        self._patch(monkeypatch, IdentificationFailure(reason=reason, detail="x"))
        r = client.post("/v1/identify", files=_upload(), headers={"X-Gemini-Key": "hdr-key"})
        assert r.status_code == status
        assert r.json()["detail"]["error"] == reason.value

    def test_missing_key_without_network(self, client):
        r = client.post("/v1/identify", files=_upload())
        assert r.status_code == 401
        assert r.json()["detail"]["error"] == "credential_missing"

    def test_empty_upload(self, client):
        r = client.post("/v1/identify", files={"image": ("empty.jpg", b"", "image/jpeg")})
        assert r.status_code == 422
