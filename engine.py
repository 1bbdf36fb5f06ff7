"""
Corn Doctor - Diagnosis Engine

Builds a schema-constrained Gemini request from an encoded leaf photo, sends
it, and validates the JSON that comes back into a DiagnosisRecord.

Error taxonomy:
1. ConfigurationError: no API key; raised before any network I/O.
2. TransportError: the call failed or the model returned unusable output.
3. DiagnosisUnavailable: the model itself declined (not a corn leaf, too blurry).
"""

import json
import logging
import concurrent.futures
from dataclasses import dataclass, field
from typing import Optional, Tuple

import requests

from config import DEFAULT_API_BASE, DEFAULT_MODEL

logger = logging.getLogger("corn-doctor.engine")

KNOWN_CONDITIONS = (
    "Healthy",
    "Common Rust",
    "Northern Corn Leaf Blight",
    "Gray Leaf Spot",
)

ADVICE_FIELDS = ("causes", "treatment", "prevention")

DIAGNOSIS_PROMPT = """You are an expert agricultural botanist specializing in corn plant diseases. Analyze the provided image of a corn leaf. Identify if the plant is healthy or suffering from one of the following diseases: Common Rust, Northern Corn Leaf Blight, or Gray Leaf Spot.

Provide your diagnosis. If the image is not a corn leaf or the quality is too poor to make a diagnosis, respond with an error message within the JSON structure."""

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "diseaseName": {
            "type": "STRING",
            "description": "The common name of the identified disease (e.g., 'Common Rust', 'Healthy', 'Northern Corn Leaf Blight', 'Gray Leaf Spot').",
        },
        "isHealthy": {
            "type": "BOOLEAN",
            "description": "True if the plant is identified as healthy, otherwise false.",
        },
        "description": {
            "type": "STRING",
            "description": "A detailed but concise description of the condition.",
        },
        "causes": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "A list of common causes for the disease.",
        },
        "treatment": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "A list of recommended steps or methods for treatment.",
        },
        "prevention": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "A list of measures to prevent this disease in the future.",
        },
        "error": {
            "type": "STRING",
            "description": "An error message if diagnosis is not possible (e.g., 'Unable to diagnose. Please provide a clear image of a corn leaf.').",
            "nullable": True,
        },
    },
    "required": ["diseaseName", "isHealthy", "description", "causes", "treatment", "prevention"],
}

GENERIC_FAILURE = "Failed to get a diagnosis from the AI. Please try again."


# ----------------- Errors -----------------
class DiagnosisError(Exception):
    """Base class for every failure surfaced to the user."""

    kind = "diagnosis_error"

    def __init__(self, message, detail=None):
        super().__init__(detail or message)
        self.message = message
        self.detail = detail or message


class ConfigurationError(DiagnosisError):
    kind = "configuration"


class TransportError(DiagnosisError):
    """The remote call failed or its output was unusable.

    `message` is the generic user-facing text, `detail` what actually broke.
    """

    kind = "transport"

    def __init__(self, detail):
        super().__init__(GENERIC_FAILURE, detail)


class DiagnosisUnavailable(DiagnosisError):
    kind = "unavailable"


# ----------------- Data model -----------------
@dataclass(frozen=True)
class DiagnosisRecord:
    disease_name: str = ""
    is_healthy: bool = False
    description: str = ""
    causes: Tuple[str, ...] = field(default_factory=tuple)
    treatment: Tuple[str, ...] = field(default_factory=tuple)
    prevention: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    @property
    def is_known_disease(self) -> bool:
        return self.disease_name in KNOWN_CONDITIONS

    def to_dict(self) -> dict:
        if self.is_error:
            return {"error": self.error}
        return {
            "diseaseName": self.disease_name,
            "isHealthy": self.is_healthy,
            "description": self.description,
            "causes": list(self.causes),
            "treatment": list(self.treatment),
            "prevention": list(self.prevention),
        }

    @classmethod
    def from_payload(cls, payload) -> "DiagnosisRecord":
        """Validate a decoded model payload.

        A non-empty `error` wins over everything else and yields an error
        record. Otherwise name, health flag and description are mandatory and
        the advice lists default to empty when absent or null. Text fields and
        advice items are whitespace-trimmed and blank advice items are dropped,
        so an empty list renders the same as "nothing to show".
        """
        if not isinstance(payload, dict):
            raise TransportError(f"Expected a JSON object, got {type(payload).__name__}")

        error = payload.get("error")
        if error is not None and not isinstance(error, str):
            raise TransportError("Response field 'error' must be a string or null")
        if error and error.strip():
            return cls(error=error)

        disease_name = payload.get("diseaseName")
        if not isinstance(disease_name, str) or not disease_name.strip():
            raise TransportError("Response is missing 'diseaseName'")

        is_healthy = payload.get("isHealthy")
        if not isinstance(is_healthy, bool):
            raise TransportError("Response field 'isHealthy' must be a boolean")

        description = payload.get("description")
        if not isinstance(description, str) or not description.strip():
            raise TransportError("Response is missing 'description'")

        advice = {}
        for name in ADVICE_FIELDS:
            items = payload.get(name)
            if items is None:
                items = []
            if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
                raise TransportError(f"Response field '{name}' must be a list of strings")
            advice[name] = tuple(i.strip() for i in items if i.strip())

        return cls(
            disease_name=disease_name.strip(),
            is_healthy=is_healthy,
            description=description.strip(),
            **advice,
        )


# ----------------- Request / response -----------------
def build_prompt() -> str:
    return DIAGNOSIS_PROMPT


def build_request(image) -> dict:
    """generateContent body: inline image, task prompt, JSON output schema."""
    return {
        "contents": [{
            "role": "user",
            "parts": [
                {"inlineData": {"mimeType": image.mime_type, "data": image.data}},
                {"text": build_prompt()},
            ],
        }],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def _strip_code_fence(text):
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_diagnosis(text) -> DiagnosisRecord:
    if not isinstance(text, str) or not text.strip():
        raise TransportError("Empty response from the AI")
    try:
        payload = json.loads(_strip_code_fence(text.strip()))
    except json.JSONDecodeError as e:
        raise TransportError(f"Malformed JSON in AI response: {e}") from e
    return DiagnosisRecord.from_payload(payload)


def extract_candidate_text(response_data) -> str:
    """Pull the first candidate's text out of a generateContent response."""
    if not isinstance(response_data, dict):
        raise TransportError("Unexpected response from Gemini API")

    candidates = response_data.get("candidates") or []
    if not isinstance(candidates, list):
        raise TransportError("Unexpected response from Gemini API")
    if candidates:
        first = candidates[0]
        content = first.get("content") if isinstance(first, dict) else None
        if not isinstance(content, dict):
            raise TransportError("Unexpected response from Gemini API")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise TransportError("Unexpected response from Gemini API")
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if texts:
            return "".join(texts)

    feedback = response_data.get("promptFeedback")
    block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
    if block_reason:
        raise TransportError(f"Request blocked by Gemini API: {block_reason}")
    raise TransportError("No content generated by Gemini API")


# ----------------- Remote classifier -----------------
class GeminiClassifier:
    """Calls the Gemini REST generateContent endpoint with a prebuilt body."""

    def __init__(self, api_key, model=DEFAULT_MODEL, api_base=DEFAULT_API_BASE,
                 timeout=None, session=None):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    def classify(self, request_body) -> str:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY environment variable is not set")

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        logger.info("Calling Gemini model %s", self.model)
        try:
            response = self.session.post(self.url, headers=headers, json=request_body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransportError("Request to Gemini API timed out") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error: {e}") from e

        if response.status_code != 200:
            error_text = response.text
            try:
                error_message = response.json().get("error", {}).get("message", error_text)
            except (ValueError, AttributeError):
                error_message = error_text
            raise TransportError(f"Gemini API Error (Status {response.status_code}): {error_message}")

        try:
            response_data = response.json()
        except ValueError as e:
            raise TransportError(f"JSON decode error: {e}") from e

        return extract_candidate_text(response_data)


# ----------------- Adapter -----------------
class DiagnosisAdapter:
    """Single best-effort diagnosis per call. No retries."""

    def __init__(self, classifier):
        self.classifier = classifier
        self._executor = None

    @classmethod
    def from_settings(cls, settings) -> "DiagnosisAdapter":
        return cls(GeminiClassifier(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout=settings.request_timeout,
        ))

    def diagnose(self, image) -> DiagnosisRecord:
        request_body = build_request(image)
        try:
            text = self.classifier.classify(request_body)
        except DiagnosisError as e:
            logger.error("Diagnosis failed (%s): %s", e.kind, e.detail)
            raise

        try:
            record = parse_diagnosis(text)
        except TransportError as e:
            logger.error("Unusable AI response: %s", e.detail)
            raise

        if record.is_error:
            logger.info("Model declined to diagnose: %s", record.error)
            raise DiagnosisUnavailable(record.error)

        logger.info("Diagnosis: %s (healthy=%s)", record.disease_name, record.is_healthy)
        return record

    def submit(self, image) -> concurrent.futures.Future:
        """Run diagnose() in the background.

        Waiting on the future can be bounded with result(timeout=...); giving
        up on it leaves the remote call running to completion.
        """
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="diagnosis")
        return self._executor.submit(self.diagnose, image)

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
