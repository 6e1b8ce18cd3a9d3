"""Claude (Anthropic) AI Provider implementation.

This provider uses the Anthropic SDK to send chart images and stage
prompts to Claude models.
"""

import logging
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import APIConnectionError, APIError, RateLimitError

from chartinsight.agent.providers import (
    AIProvider,
    AIResponse,
    ProviderConfig,
    parse_image_ref,
)

logger = logging.getLogger(__name__)


class ClaudeProvider(AIProvider):
    """Claude AI provider using the Anthropic SDK.

    Features:
    - Multi-image vision requests (base64 or URL sources)
    - System prompts per stage
    """

    def __init__(self, config: ProviderConfig):
        """Initialize the Claude provider.

        Args:
            config: Provider configuration with API key and model names
        """
        super().__init__(config)
        self._client: Optional[anthropic.AsyncAnthropic] = None

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Get or create the Anthropic async client."""
        if self._client is None:
            kwargs = {"api_key": self.config.api_key}
            if self.config.base_url:
                kwargs["base_url"] = self.config.base_url
            self._client = anthropic.AsyncAnthropic(**kwargs)
            self._initialized = True
        return self._client

    @staticmethod
    def _image_block(ref: str) -> Dict[str, Any]:
        image = parse_image_ref(ref)
        if image.is_inline:
            source = {"type": "base64", "media_type": image.media_type, "data": image.data}
        else:
            source = {"type": "url", "url": image.url}
        return {"type": "image", "source": source}

    def _extract_response(self, response) -> AIResponse:
        """Extract text content and usage from an Anthropic response.

        Args:
            response: Anthropic API response

        Returns:
            AIResponse with extracted content
        """
        text_parts = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]

        usage = None
        if getattr(response, "usage", None):
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }

        return AIResponse(
            content="\n".join(text_parts),
            usage=usage,
            raw_response=response,
        )

    async def analyze_images(
        self,
        images: List[str],
        prompt: str,
        system: Optional[str] = None,
        model_type: str = "planning",
        max_tokens: int = 4000,
    ) -> AIResponse:
        """Analyze chart images using Claude's vision capabilities.

        Raises:
            ValueError: If an image reference is malformed
            APIError: If the API request fails
        """
        client = self._get_client()
        model = self.get_model(model_type)

        message_content = [self._image_block(ref) for ref in images]
        message_content.append({"type": "text", "text": prompt})

        request_params = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": message_content}],
        }
        if system:
            request_params["system"] = system

        try:
            logger.debug(f"Claude vision request: model={model}, images={len(images)}")
            response = await client.messages.create(**request_params)
            return self._extract_response(response)

        except RateLimitError as e:
            logger.warning(f"Claude rate limit hit: {e}")
            raise
        except APIConnectionError as e:
            logger.error(f"Claude connection error: {e}")
            raise
        except APIError as e:
            logger.error(f"Claude API error: {e}")
            raise

    async def close(self) -> None:
        """Close the underlying SDK client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
