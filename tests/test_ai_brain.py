"""Tests for the Gemini adapter with the client library stubbed out."""

from __future__ import annotations

import pytest
from google.api_core import exceptions as google_exceptions

from health_context import ai_brain
from health_context.ai_brain import AIBrain
from health_context.core.config import Config
from health_context.core.exceptions import BackendError


class FakeResponse:
    def __init__(self, text: str) -> None:
        self.text = text
        self.candidates = []
        self.usage_metadata = None


class FakeModel:
    def __init__(self, outcomes) -> None:  # noqa: ANN001
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    def generate_content(self, prompt, **kwargs):  # noqa: ANN001, ANN003
        self.calls.append({"prompt": prompt, **kwargs})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_genai(monkeypatch):
    state = {"model": FakeModel([FakeResponse("ok")]), "embed_calls": []}

    def embed_content(**kwargs):  # noqa: ANN003
        state["embed_calls"].append(kwargs)
        return {"embedding": [0.1, 0.2]}

    monkeypatch.setattr(ai_brain.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(ai_brain.genai, "GenerativeModel", lambda name: state["model"])
    monkeypatch.setattr(ai_brain.genai, "embed_content", embed_content)
    monkeypatch.setattr(ai_brain.time, "sleep", lambda seconds: None)
    return state


def test_missing_api_key_is_rejected():
    with pytest.raises(BackendError):
        AIBrain(Config(gemini_api_key=None))


def test_generate_text_passes_timeout_and_limits(fake_genai):
    brain = AIBrain(Config(gemini_api_key="key", backend_timeout=4.0))

    response = brain.generate_text("prompt", temperature=0.3, max_output_tokens=180)

    assert response.text == "ok"
    call = fake_genai["model"].calls[0]
    assert call["generation_config"] == {"temperature": 0.3, "max_output_tokens": 180}
    assert call["request_options"] == {"timeout": 4.0}


def test_server_errors_are_retried(fake_genai):
    fake_genai["model"] = FakeModel([google_exceptions.InternalServerError("busy"), FakeResponse("second try")])
    brain = AIBrain(Config(gemini_api_key="key"), max_retries=2)

    assert brain.generate_text("prompt").text == "second try"


def test_persistent_errors_become_backend_errors(fake_genai):
    fake_genai["model"] = FakeModel([google_exceptions.InternalServerError("busy")] * 2)
    brain = AIBrain(Config(gemini_api_key="key"), max_retries=2)

    with pytest.raises(BackendError):
        brain.generate_text("prompt")


def test_empty_completion_is_an_error(fake_genai):
    fake_genai["model"] = FakeModel([FakeResponse("  ")])
    brain = AIBrain(Config(gemini_api_key="key"))

    with pytest.raises(BackendError):
        brain.generate_text("prompt")


def test_embed_text_requests_dimension(fake_genai):
    brain = AIBrain(Config(gemini_api_key="key"))

    assert brain.embed_text("hello", output_dimensionality=2) == [0.1, 0.2]
    call = fake_genai["embed_calls"][0]
    assert call["model"] == "models/text-embedding-004"
    assert call["output_dimensionality"] == 2
    assert call["task_type"] == "retrieval_document"
