"""Grok (xAI) AI Provider implementation.

This provider uses the xAI API (OpenAI-compatible /chat/completions) to
send chart images and stage prompts to Grok models.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from chartinsight.agent.providers import (
    AIProvider,
    AIResponse,
    ProviderConfig,
    parse_image_ref,
)

logger = logging.getLogger(__name__)

# Grok API base URL
GROK_BASE_URL = "https://api.x.ai/v1"


class GrokProvider(AIProvider):
    """Grok AI provider using the xAI API.

    Features:
    - Multi-image vision requests (OpenAI image_url format)
    - System prompts per stage
    """

    def __init__(self, config: ProviderConfig):
        """Initialize the Grok provider.

        Args:
            config: Provider configuration with API key and model names
        """
        super().__init__(config)
        self._client: Optional[httpx.AsyncClient] = None
        self._base_url = config.base_url or GROK_BASE_URL

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP async client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(120.0, connect=30.0),
            )
            self._initialized = True
        return self._client

    @staticmethod
    def _image_part(ref: str) -> Dict[str, Any]:
        image = parse_image_ref(ref)
        url = f"data:{image.media_type};base64,{image.data}" if image.is_inline else image.url
        return {"type": "image_url", "image_url": {"url": url}}

    def _extract_response(self, data: Dict[str, Any]) -> AIResponse:
        """Extract content and usage from a chat completions response.

        Args:
            data: JSON response data

        Returns:
            AIResponse with extracted content
        """
        content = ""
        choices = data.get("choices") or []
        if choices:
            content = choices[0].get("message", {}).get("content") or ""

        usage = None
        if "usage" in data:
            usage = {
                "input_tokens": data["usage"].get("prompt_tokens", 0),
                "output_tokens": data["usage"].get("completion_tokens", 0),
            }

        return AIResponse(content=content, usage=usage, raw_response=data)

    async def analyze_images(
        self,
        images: List[str],
        prompt: str,
        system: Optional[str] = None,
        model_type: str = "planning",
        max_tokens: int = 4000,
    ) -> AIResponse:
        """Analyze chart images using Grok's vision capabilities.

        Raises:
            ValueError: If an image reference is malformed
            httpx.HTTPStatusError: On a non-2xx response
            httpx.RequestError: On connectivity failures
        """
        client = self._get_client()
        model = self.get_model(model_type)

        message_content = [self._image_part(ref) for ref in images]
        message_content.append({"type": "text", "text": prompt})

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": message_content})

        body = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            logger.debug(f"Grok vision request: model={model}, images={len(images)}")
            response = await client.post("/chat/completions", json=body)
            response.raise_for_status()
            return self._extract_response(response.json())

        except httpx.HTTPStatusError as e:
            logger.error(f"Grok vision error: {e.response.status_code} - {e.response.text}")
            raise
        except httpx.RequestError as e:
            error_detail = str(e) or f"{type(e).__name__}: {repr(e)}"
            logger.error(f"Grok vision connection error: {error_detail}")
            raise

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
