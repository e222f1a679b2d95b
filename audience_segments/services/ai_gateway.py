"""AI Gateway - text completion over an OpenAI-compatible chat API.

The segment generator only needs "messages in, text out". This module owns
the HTTP details (auth header, timeout, response shape) and classifies
failures so callers can decide what to retry.
"""

import httpx
import logging
from typing import Optional, List, Dict, Any
from pydantic import BaseModel

from audience_segments.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class AIGatewayConfig(BaseModel):
    """Configuration for the completion endpoint."""

    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    timeout: float = 10.0


class ChatMessage(BaseModel):
    """Chat message format."""

    role: str  # system, user, assistant
    content: str


class CompletionError(Exception):
    """A completion call failed.

    ``retryable`` is True for transport errors, timeouts, 429 and 5xx.
    """

    def __init__(self, message: str, retryable: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class AIGateway:
    """Chat-completion client with a lazily created, reusable httpx client."""

    def __init__(self, config: Optional[AIGatewayConfig] = None):
        self.config = config or AIGatewayConfig(
            base_url=settings.OPENAI_BASE_URL,
            api_key=settings.OPENAI_API_KEY,
            model=settings.AI_MODEL,
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        )
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with auth headers."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=headers,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        max_tokens: int = 500,
        temperature: float = 0.2,
        model: Optional[str] = None,
    ) -> str:
        """
        Run one chat completion and return the assistant text.

        Raises:
            CompletionError: on any failure, flagged retryable when transient
        """
        if not self.is_configured:
            raise CompletionError("openai_not_configured")

        payload: Dict[str, Any] = {
            "model": model or self.config.model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        try:
            client = await self.get_client()
            response = await client.post("/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            raise CompletionError(
                f"completion request failed with HTTP {code}",
                retryable=code in RETRYABLE_STATUS_CODES,
                status_code=code,
            ) from e
        except httpx.TransportError as e:
            raise CompletionError(f"{type(e).__name__}: {e}", retryable=True) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Anything else httpx raises is permanent
            raise CompletionError(f"{type(e).__name__}: {e}") from e

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"unexpected completion response: {e}") from e

        if not isinstance(content, str):
            raise CompletionError("completion content is not text")

        logger.debug(f"Completion ok ({payload['model']}, usage={data.get('usage', {})})")
        return content


ai_gateway = AIGateway()


async def get_ai_gateway() -> AIGateway:
    """Dependency returning the shared gateway."""
    return ai_gateway
