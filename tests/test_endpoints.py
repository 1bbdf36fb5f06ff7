import io
import json

from conftest import COMMON_RUST, NOT_A_LEAF, FakeClassifier
from config import Settings
from engine import DiagnosisAdapter, TransportError


def upload(data, filename="leaf.png"):
    return {"image": (io.BytesIO(data), filename)}


def make_client(classifier, settings=None):
    from endpoints import create_app

    app = create_app(adapter=DiagnosisAdapter(classifier), settings=settings or Settings(gemini_api_key="k"))
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client):
    body = client.get("/health").get_json()
    assert body["status"] == "healthy"
    assert body["api_key_configured"] is True


def test_diagnose_success(client, png_bytes, fake_classifier):
    response = client.post("/api/diagnose", data=upload(png_bytes), content_type="multipart/form-data")
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["diagnosis"] == COMMON_RUST
    inline = fake_classifier.requests[0]["contents"][0]["parts"][0]["inlineData"]
    assert inline["mimeType"] == "image/png"


def test_diagnose_without_file(client):
    response = client.post("/api/diagnose", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No image file provided"


def test_diagnose_declined_shows_no_diagnosis(png_bytes):
    client = make_client(FakeClassifier(text=json.dumps(NOT_A_LEAF)))
    response = client.post("/api/diagnose", data=upload(png_bytes), content_type="multipart/form-data")
    assert response.status_code == 422
    body = response.get_json()
    assert body == {
        "success": False,
        "error": NOT_A_LEAF["error"],
        "kind": "unavailable",
    }


def test_diagnose_transport_failure(png_bytes):
    client = make_client(FakeClassifier(exc=TransportError("connection reset")))
    response = client.post("/api/diagnose", data=upload(png_bytes), content_type="multipart/form-data")
    assert response.status_code == 502
    assert response.get_json()["kind"] == "transport"


def test_diagnose_without_key_is_configuration_error(png_bytes):
    from endpoints import create_app

    app = create_app(settings=Settings())
    app.config["TESTING"] = True
    response = app.test_client().post(
        "/api/diagnose", data=upload(png_bytes), content_type="multipart/form-data")
    assert response.status_code == 500
    assert response.get_json()["kind"] == "configuration"


def test_oversized_upload_rejected(png_bytes):
    client = make_client(FakeClassifier(text=json.dumps(COMMON_RUST)),
                         Settings(gemini_api_key="k", max_content_length=16))
    response = client.post("/api/diagnose", data=upload(png_bytes), content_type="multipart/form-data")
    assert response.status_code == 413


def test_json_report_download(client):
    response = client.post("/api/report", json={"success": True, "diagnosis": COMMON_RUST})
    assert response.status_code == 200
    assert response.mimetype == "application/json"
    assert "corn-disease-report-" in response.headers["Content-Disposition"]
    assert response.get_json()["disease"] == "Common Rust"


def test_pdf_report_download(client):
    response = client.post("/api/report/pdf", json=COMMON_RUST)
    assert response.status_code == 200
    assert response.data.startswith(b"%PDF")


def test_report_rejects_error_record(client):
    response = client.post("/api/report", json={"error": "Not a corn leaf."})
    assert response.status_code == 400


def test_report_rejects_garbage(client):
    response = client.post("/api/report", data="nope", content_type="text/plain")
    assert response.status_code == 400
