"""Gemini integration layer used by the summarizer and embedder."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .core.config import Config
from .core.exceptions import BackendError
from .core.logger import get_logger


@dataclass(frozen=True)
class LLMResponse:
    """LLM completion result that includes response metadata."""

    text: str
    metadata: Dict[str, Any]


class AIBrain:
    """Adapter responsible for communicating with the Gemini API.

    Every call carries a request timeout; transient 5xx errors are retried
    with exponential backoff, everything else surfaces as :class:`BackendError`.
    """

    def __init__(self, config: Config, *, max_retries: int = 2) -> None:
        if not config.gemini_api_key:
            raise BackendError("GEMINI_API_KEY is not set. Check your .env file.")

        self._logger = get_logger(self.__class__.__name__)
        self._model_name = config.gemini_model
        self._embedding_model = config.gemini_embedding_model
        self._timeout = config.backend_timeout
        self._max_retries = max(1, max_retries)
        genai.configure(api_key=config.gemini_api_key)
        self._logger.debug(
            "Gemini client configured (model=%s, api_key=%s)",
            self._model_name,
            config.as_dict()["gemini_api_key"],
        )
        self._model = genai.GenerativeModel(self._model_name)

    def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_output_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Request a single completion from Gemini."""
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if max_output_tokens:
            generation_config["max_output_tokens"] = max_output_tokens

        response = self._call(
            "generate_content",
            lambda: self._model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout or self._timeout},
            ),
        )

        metadata = self._extract_response_metadata(response)
        metadata.update({"prompt_length": len(prompt), "max_output_tokens": max_output_tokens})
        text = self._pick_primary_text(response)
        if not text:
            self._logger.warning("Gemini returned an empty response (metadata=%s)", metadata)
            raise BackendError("Gemini returned an empty response.")
        return LLMResponse(text=text, metadata=metadata)

    def embed_text(
        self,
        text: str,
        *,
        output_dimensionality: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[float]:
        """Return the Gemini embedding for ``text``."""
        kwargs: Dict[str, Any] = {
            "model": self._embedding_model,
            "content": text,
            "task_type": "retrieval_document",
            "request_options": {"timeout": timeout or self._timeout},
        }
        if output_dimensionality:
            kwargs["output_dimensionality"] = output_dimensionality

        result = self._call("embed_content", lambda: genai.embed_content(**kwargs))
        embedding = result.get("embedding") if isinstance(result, dict) else getattr(result, "embedding", None)
        if not isinstance(embedding, list):
            raise BackendError("Gemini embedding response did not contain a vector.")
        return embedding

    def _call(self, operation: str, request):
        for attempt in range(self._max_retries):
            try:
                return request()
            except google_exceptions.InternalServerError as exc:
                if attempt < self._max_retries - 1:
                    wait_time = 2 ** attempt
                    self._logger.warning(
                        "Gemini %s returned 500 (attempt %d/%d), retrying in %ss",
                        operation,
                        attempt + 1,
                        self._max_retries,
                        wait_time,
                    )
                    time.sleep(wait_time)
                    continue
                raise BackendError(f"Gemini {operation} failed after {self._max_retries} attempts: {exc}") from exc
            except Exception as exc:  # pragma: no cover - API errors surface at runtime
                raise BackendError(f"Gemini {operation} failed: {exc}") from exc
        raise BackendError(f"Gemini {operation} was not attempted")  # pragma: no cover

    def _pick_primary_text(self, response: Any) -> str:
        try:
            text_attr = response.text
        except (AttributeError, ValueError):
            # ``.text`` raises ValueError when the candidate was blocked.
            text_attr = None
        if isinstance(text_attr, str) and text_attr.strip():
            return text_attr.strip()

        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            parts = getattr(content, "parts", None) if content else None
            if not parts:
                continue
            chunks = [part.text for part in parts if isinstance(getattr(part, "text", None), str)]
            if chunks:
                return "".join(chunks).strip()
        return ""

    def _extract_response_metadata(self, response: Any) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        candidates = getattr(response, "candidates", None)
        if candidates:
            finish_reason = getattr(candidates[0], "finish_reason", None)
            if finish_reason is not None:
                metadata["finish_reason"] = str(finish_reason)
        usage = getattr(response, "usage_metadata", None)
        if usage:
            metadata["usage_metadata"] = {
                "prompt_token_count": getattr(usage, "prompt_token_count", None),
                "candidates_token_count": getattr(usage, "candidates_token_count", None),
                "total_token_count": getattr(usage, "total_token_count", None),
            }
        return metadata
