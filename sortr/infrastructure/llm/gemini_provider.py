import logging
import os
import time
from typing import Optional

import google.generativeai as genai

from sortr.core.domain.errors import ConfigError, SuggestionProviderError
from sortr.core.interfaces.ports import ILLMProvider
from sortr.infrastructure.llm.ollama_provider import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class GeminiProvider(ILLMProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        rate_limit_rpm: int = 25,
    ):
        """
        Args:
            rate_limit_rpm: Requests per minute limit (default: 25 for free tier)
        """
        self.model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.min_delay = 60.0 / rate_limit_rpm  # seconds between requests
        self.last_request_time = 0.0

        if not self.api_key:
            raise ConfigError("Gemini API Key is required. Set GEMINI_API_KEY env var.")

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name, system_instruction=SYSTEM_PROMPT)

    def generate(self, prompt: str) -> str:
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_delay:
            time.sleep(self.min_delay - elapsed)

        try:
            response = self.model.generate_content(prompt)
            return response.text
        except Exception as e:
            if "404" in str(e):
                logger.error("Gemini model '%s' not found", self.model_name)
            raise SuggestionProviderError(f"Gemini API failed: {e}") from e
        finally:
            self.last_request_time = time.time()
