import io
import json

import pytest
from PIL import Image

from config import Settings
from engine import DiagnosisAdapter


class FakeClassifier:
    """In-memory stand-in for the Gemini classifier: returns canned text."""

    def __init__(self, text=None, exc=None):
        self.text = text
        self.exc = exc
        self.requests = []

    def classify(self, request_body):
        self.requests.append(request_body)
        if self.exc is not None:
            raise self.exc
        return self.text


COMMON_RUST = {
    "diseaseName": "Common Rust",
    "isHealthy": False,
    "description": "Cinnamon-brown pustules scattered over both leaf surfaces.",
    "causes": ["Puccinia sorghi spores carried by wind"],
    "treatment": ["Apply a foliar fungicide at first sign of pustules"],
    "prevention": ["Plant resistant hybrids"],
}

HEALTHY = {
    "diseaseName": "Healthy",
    "isHealthy": True,
    "description": "The leaf shows uniform green color with no lesions.",
    "causes": [],
    "treatment": [],
    "prevention": ["Keep scouting weekly"],
}

NOT_A_LEAF = {
    "diseaseName": "",
    "isHealthy": False,
    "description": "",
    "causes": [],
    "treatment": [],
    "prevention": [],
    "error": "Unable to diagnose. Please provide a clear image of a corn leaf.",
}


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (20, 160, 40)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def fake_classifier():
    return FakeClassifier(text=json.dumps(COMMON_RUST))


@pytest.fixture
def settings():
    return Settings(gemini_api_key="test-key")


@pytest.fixture
def client(fake_classifier, settings):
    from endpoints import create_app

    app = create_app(adapter=DiagnosisAdapter(fake_classifier), settings=settings)
    app.config["TESTING"] = True
    return app.test_client()
