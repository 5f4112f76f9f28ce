import logging
from typing import List

from sortr.core.domain.errors import EmbeddingError, EmbeddingUnavailableError
from sortr.core.interfaces.ports import IEmbeddingProvider

logger = logging.getLogger(__name__)


class LocalEmbeddingProvider(IEmbeddingProvider):
    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self.model_name = model_name
        try:
            from sentence_transformers import SentenceTransformer
            self.model = SentenceTransformer(model_name)
        except Exception as e:
            raise EmbeddingUnavailableError(f"Could not load embedding model {model_name}: {e}") from e
        logger.info("Loaded embedding model %s", model_name)

    def embed(self, text: str) -> List[float]:
        try:
            # Normalized so cosine similarity stays in a comparable range
            embedding = self.model.encode(text, normalize_embeddings=True)
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e
        return embedding.tolist()

    def get_dimension(self) -> int:
        return self.model.get_sentence_embedding_dimension()
