"""On-device embedding backend built on the Qwen3 embedding model."""

from __future__ import annotations

import os
from typing import List, Sequence

import numpy as np

from ..core.exceptions import BackendError

try:  # pragma: no cover - runtime import guard
    import torch
    import torch.nn.functional as F
    from transformers import AutoModel, AutoTokenizer
except ImportError as exc:  # pragma: no cover
    raise BackendError(
        "EMBEDDING_BACKEND=qwen requires torch and transformers (pip install '.[local-embeddings]')."
    ) from exc


_MODEL_ENV = "QWEN3_EMBEDDING_PATH"
_DEFAULT_MODEL_ID = "Qwen/Qwen3-Embedding-0.6B"


def _last_token_pool(last_hidden_states, attention_mask):
    left_padding = attention_mask[:, -1].sum() == attention_mask.shape[0]
    if left_padding:
        return last_hidden_states[:, -1]
    sequence_lengths = attention_mask.sum(dim=1) - 1
    batch_indices = torch.arange(last_hidden_states.size(0), device=last_hidden_states.device)
    return last_hidden_states[batch_indices, sequence_lengths]


class QwenEmbeddingModel:
    """Thin wrapper around the Qwen3 embedding model.

    Qwen3 embeddings are trained so that a prefix of the vector is itself a
    usable embedding; vectors are cut to ``dimension`` and re-normalised.
    """

    def __init__(
        self,
        *,
        dimension: int,
        model_path: str | None = None,
        max_length: int = 1024,
    ) -> None:
        model_source = model_path or os.getenv(_MODEL_ENV, _DEFAULT_MODEL_ID)

        try:
            tokenizer = AutoTokenizer.from_pretrained(model_source, trust_remote_code=True)
            model = AutoModel.from_pretrained(model_source, trust_remote_code=True)
        except Exception as exc:
            raise BackendError(f"Could not load Qwen embedding model {model_source}: {exc}") from exc

        if tokenizer.pad_token is None and tokenizer.eos_token:
            tokenizer.pad_token = tokenizer.eos_token
        tokenizer.padding_side = "left"

        hidden_size = getattr(model.config, "hidden_size", None)
        if hidden_size is not None and dimension > hidden_size:
            raise BackendError(f"Qwen model produces {hidden_size} dimensions, {dimension} requested")

        model.eval()
        self._model = model
        self._tokenizer = tokenizer
        self._device = model.device
        self._max_length = max_length
        self._dimension = dimension

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        batch_dict = self._tokenizer(
            list(texts),
            padding=True,
            truncation=True,
            max_length=self._max_length,
            return_tensors="pt",
        ).to(self._device)

        with torch.no_grad():
            outputs = self._model(**batch_dict)

        pooled = _last_token_pool(outputs.last_hidden_state, batch_dict["attention_mask"])
        truncated = F.normalize(pooled[:, : self._dimension], p=2, dim=1)
        vectors = truncated.cpu().numpy().astype(np.float32)
        return [vector.tolist() for vector in vectors]

    def embed_single(self, text: str) -> List[float]:
        return self.embed([text])[0]
