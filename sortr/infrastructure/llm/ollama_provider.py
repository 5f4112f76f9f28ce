import requests

from sortr.core.domain.errors import SuggestionProviderError
from sortr.core.interfaces.ports import ILLMProvider

SYSTEM_PROMPT = (
    "You are a precise note organization assistant. "
    "Always follow the exact output format requested."
)


class OllamaProvider(ILLMProvider):
    def __init__(
        self,
        model_name: str = "llama3.2:3b",
        base_url: str = "http://localhost:11434",
        timeout: float = 120.0,
    ):
        self.model_name = model_name
        self.base_url = base_url
        self.api_url = f"{base_url}/api/chat"
        self.timeout = timeout

    def generate(self, prompt: str) -> str:
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
        }

        try:
            response = requests.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise SuggestionProviderError(f"Ollama connection failed: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise SuggestionProviderError(f"Unexpected Ollama reply: {data!r}")
        return message.get("content") or ""
