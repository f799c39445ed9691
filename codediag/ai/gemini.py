import asyncio
import logging
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from codediag.config import (
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    GEMINI_TIMEOUT_SECONDS,
    GOOGLE_API_KEY,
)

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """The generative model could not be reached or returned nothing."""


class GeminiGenerator:
    """Sends one system + user instruction pair to Gemini and returns the raw text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = GEMINI_TEMPERATURE,
        timeout: float = GEMINI_TIMEOUT_SECONDS,
    ):
        self.api_key = (api_key if api_key is not None else GOOGLE_API_KEY).strip()
        self.model = model or GEMINI_MODEL
        self.temperature = temperature
        self.timeout = timeout
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            logger.error("[gemini] GOOGLE_API_KEY missing")
            raise GenerationError("GOOGLE_API_KEY not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
            logger.info("[gemini] client_configured=true model=%s", self.model)
        return self._client

    async def generate(self, system: str, user: str) -> str:
        client = self._get_client()
        config = genai_types.GenerateContentConfig(
            system_instruction=system,
            temperature=self.temperature,
            response_mime_type="application/json",
        )
        logger.info("[gemini] generate start model=%s", self.model)
        try:
            resp = await asyncio.wait_for(
                client.aio.models.generate_content(model=self.model, contents=user, config=config),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("[gemini] generate timed out after %.0fs", self.timeout)
            raise GenerationError("model call timed out") from e
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error("[gemini] generate failed: %s", type(e).__name__)
            raise GenerationError("model call failed") from e

        text = (resp.text or "").strip()
        if not text:
            raise GenerationError("model returned an empty response")
        logger.info("[gemini] generate ok chars=%d", len(text))
        return text


_GENERATOR: Optional[GeminiGenerator] = None


def get_generator() -> GeminiGenerator:
    global _GENERATOR
    if _GENERATOR is None:
        _GENERATOR = GeminiGenerator()
    return _GENERATOR
