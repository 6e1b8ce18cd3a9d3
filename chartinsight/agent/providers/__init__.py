"""AI Provider abstraction layer for ChartInsight.

This module provides a unified interface for the vision-capable providers
(Claude, Grok) that stage inference calls go through.
"""

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


class ModelProvider(str, Enum):
    """Supported AI model providers."""
    CLAUDE = "claude"
    GROK = "grok"


class ProviderConfig(BaseModel):
    """Configuration for an AI provider."""
    provider: ModelProvider
    planning_model: str = Field(..., description="Model ID for analysis and synthesis stages")
    fast_model: str = Field(..., description="Model ID for quick responses")
    api_key: str = Field(..., description="API key for the provider")
    base_url: Optional[str] = Field(None, description="Base URL override for the API")


class AIResponse(BaseModel):
    """Response from an AI provider."""
    content: str = Field(..., description="Text content of the response")
    usage: Optional[Dict[str, Any]] = Field(None, description="Token usage information")
    raw_response: Optional[Any] = Field(None, description="Raw response object from the provider", exclude=True)


class ImageRef(NamedTuple):
    """A chart image, either inline base64 data or a remote URL."""
    media_type: Optional[str]
    data: Optional[str]
    url: Optional[str]

    @property
    def is_inline(self) -> bool:
        return self.data is not None


def sniff_media_type(image_base64: str) -> str:
    """Guess the media type from base64 magic bytes (default PNG for charts)."""
    if image_base64.startswith("/9j/"):
        return "image/jpeg"
    if image_base64.startswith("R0lGOD"):
        return "image/gif"
    if image_base64.startswith("UklGR"):
        return "image/webp"
    return "image/png"


def parse_image_ref(ref: str) -> ImageRef:
    """Split an image reference into inline data or a URL.

    Accepts ``data:<mimetype>;base64,<data>`` URIs, http(s) URLs, and bare
    base64 payloads.

    Raises:
        ValueError: If the reference is empty or uses another scheme
    """
    if not ref:
        raise ValueError("Empty image reference")
    match = _DATA_URI_RE.match(ref)
    if match:
        return ImageRef(match.group("media_type"), match.group("data"), None)
    if ref.startswith(("http://", "https://")):
        return ImageRef(None, None, ref)
    if ref.startswith("data:"):
        raise ValueError("Image data URI must be base64 encoded")
    return ImageRef(sniff_media_type(ref), ref, None)


class AIProvider(ABC):
    """Abstract base class for AI providers.

    Implementations must handle multi-image vision requests with an
    optional system prompt, and log-and-reraise their transport errors.
    """

    def __init__(self, config: ProviderConfig):
        """Initialize the provider with configuration.

        Args:
            config: Provider configuration including API keys and model names
        """
        self.config = config
        self._initialized = False
        logger.info(f"Initializing {config.provider.value} provider")

    @abstractmethod
    async def analyze_images(
        self,
        images: List[str],
        prompt: str,
        system: Optional[str] = None,
        model_type: str = "planning",
        max_tokens: int = 4000,
    ) -> AIResponse:
        """Analyze chart images using the model's vision capabilities.

        Args:
            images: Image references (data URIs or URLs), in prompt order
            prompt: Analysis prompt
            system: Optional system prompt
            model_type: "planning" or "fast"
            max_tokens: Maximum tokens in response

        Returns:
            AIResponse with the text content
        """
        pass

    async def close(self) -> None:
        """Release network resources."""

    def get_model(self, model_type: str = "fast") -> str:
        """Get the model ID for the specified type.

        Args:
            model_type: "planning" or "fast"

        Returns:
            Model ID string
        """
        if model_type == "planning":
            return self.config.planning_model
        return self.config.fast_model


__all__ = [
    "ModelProvider",
    "ProviderConfig",
    "AIResponse",
    "ImageRef",
    "AIProvider",
    "parse_image_ref",
    "sniff_media_type",
]
