"""
Async LLM provider client.

Speaks the OpenAI-compatible /chat/completions protocol over httpx, so any
provider exposing that surface works (the default base URL is Gemini's
OpenAI-compatible endpoint). The model is chosen per call so the invoker can
switch between primary and fallback models.

Every failure is raised as ProviderError carrying the HTTP status (when
there is one) and a message, which is what retry classification inspects.
"""
import time
from typing import Any, Dict, Optional

import httpx

from app.core.config import AdviceSettings
from app.core.logging import get_logger
from app.core.metrics import record_llm_error, record_llm_request

logger = get_logger(__name__)


class ProviderError(Exception):
    """Failure reported by (or while reaching) the model provider."""

    def __init__(self, message: str, status: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.message = message
        self.status = status
        self.transient = transient

    def __repr__(self) -> str:
        return f"ProviderError(status={self.status!r}, message={self.message!r})"


class LLMClient:
    """Async HTTP client for text generation."""

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str],
        timeout_seconds: float = 20.0,
        temperature: float = 0.2,
    ):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature

    async def _post(self, path: str, json_payload: Dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.api_base}{path}"
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, headers=headers, json=json_payload)

    async def generate(self, model: str, prompt: str) -> str:
        """
        Generate a completion for a single user prompt.

        Returns:
            The raw text of the first choice.

        Raises:
            ProviderError on missing configuration, transport failure,
            non-2xx responses or an unrecognisable response body.
        """
        if not self.api_key:
            record_llm_error(model, "missing_api_key")
            raise ProviderError("LLM API key not configured")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }

        start = time.time()
        try:
            response = await self._post("/chat/completions", json_payload=payload)
        except httpx.TimeoutException as exc:
            record_llm_error(model, "timeout")
            logger.warning("llm_timeout", model=model, error=str(exc))
            raise ProviderError(f"Request timeout: {exc}", transient=True) from exc
        except httpx.TransportError as exc:
            record_llm_error(model, "transport_error")
            logger.warning(
                "llm_transport_error",
                model=model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise ProviderError(f"Provider unreachable: {exc}", transient=True) from exc
        finally:
            record_llm_request(model, time.time() - start)

        if response.status_code >= 400:
            record_llm_error(model, f"http_{response.status_code}")
            detail = response.text[:500]
            logger.warning(
                "llm_http_error",
                model=model,
                status_code=response.status_code,
                detail=detail,
            )
            raise ProviderError(
                f"Provider returned HTTP {response.status_code}: {detail}",
                status=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            record_llm_error(model, "malformed_response")
            raise ProviderError(f"Malformed completion response: {exc}") from exc

        if isinstance(content, list):
            # Some providers return content parts instead of a plain string
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return content or ""


def build_llm_client(settings: AdviceSettings) -> LLMClient:
    return LLMClient(
        api_base=settings.api_base,
        api_key=settings.api_key,
        timeout_seconds=settings.timeout_seconds,
    )
