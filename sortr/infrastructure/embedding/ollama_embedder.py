import logging
from typing import List, Optional

import requests

from sortr.core.domain.errors import EmbeddingError, EmbeddingUnavailableError
from sortr.core.interfaces.ports import IEmbeddingProvider

logger = logging.getLogger(__name__)


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embeddings from a running Ollama server (/api/embeddings)."""

    def __init__(
        self,
        model_name: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
    ):
        self.model_name = model_name
        self.base_url = base_url
        self.api_url = f"{base_url}/api/embeddings"
        self.timeout = timeout
        self._dimension: Optional[int] = None

        try:
            response = requests.get(f"{base_url}/api/tags", timeout=5)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise EmbeddingUnavailableError(f"Ollama is not reachable at {base_url}: {e}") from e
        logger.info("Using Ollama embeddings (%s)", model_name)

    def embed(self, text: str) -> List[float]:
        payload = {"model": self.model_name, "prompt": text}
        try:
            response = requests.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            embedding = response.json().get("embedding")
        except (requests.exceptions.RequestException, ValueError) as e:
            raise EmbeddingError(f"Ollama embedding failed: {e}") from e

        if not embedding:
            raise EmbeddingError(f"Ollama returned no embedding for model {self.model_name}")
        self._dimension = len(embedding)
        return [float(x) for x in embedding]

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension
