"""Inference collaborator: renders stage prompts and calls a vision provider.

The composer and executor only see ``invoke(spec, stage_input)``; this
module is where prompts are rendered, provider errors are translated to
``InferenceTransportError`` and the JSON body is cut out of the reply.
"""

import json
import logging
from typing import Callable, Optional, Type

import anthropic
import httpx
from pydantic import BaseModel

from chartinsight.agent.pipeline.contracts import InferenceTransportError, StageSpec
from chartinsight.agent.prompts import render
from chartinsight.agent.providers import AIProvider

logger = logging.getLogger(__name__)

JSON_INSTRUCTIONS = (
    "Respond with a single JSON object and nothing else. "
    "It must conform to this JSON schema:\n{schema}"
)


def output_instructions(shape: Type[BaseModel]) -> str:
    """Instructions appended to every stage prompt."""
    schema = json.dumps(shape.model_json_schema(), indent=2)
    return JSON_INSTRUCTIONS.replace("{schema}", schema)


def extract_json_text(response_text: str) -> str:
    """Cut the outermost JSON object out of a model reply.

    Models wrap JSON in prose or code fences; the text between the first
    ``{`` and the last ``}`` is returned. Replies without an object are
    returned unchanged so that contract validation rejects them.
    """
    json_start = response_text.find("{")
    json_end = response_text.rfind("}") + 1
    if json_start >= 0 and json_end > json_start:
        return response_text[json_start:json_end]
    return response_text


class ProviderInference:
    """Stage invoker backed by an ``AIProvider``.

    Usage:
        inference = ProviderInference(lambda: get_provider(get_default_provider()))
        executor = StageExecutor(inference)
    """

    def __init__(self, provider_getter: Callable[[], AIProvider]):
        self._provider_getter = provider_getter

    def build_prompts(self, spec: StageSpec, stage_input: BaseModel):
        """Render the (system, user) prompts for one stage."""
        system: Optional[str] = None
        if spec.system_prompt:
            system = render(spec.system_prompt, stage_input)
        prompt = render(spec.prompt, stage_input)
        return system, f"{prompt}\n\n{output_instructions(spec.output_model)}"

    async def __call__(self, spec: StageSpec, stage_input: BaseModel) -> str:
        system, prompt = self.build_prompts(spec, stage_input)
        images = stage_input.attachments() if hasattr(stage_input, "attachments") else []

        try:
            provider = self._provider_getter()
        except ValueError as e:
            # Missing API key
            raise InferenceTransportError(str(e)) from e

        try:
            response = await provider.analyze_images(
                images,
                prompt,
                system=system,
                model_type=spec.model_type,
                max_tokens=spec.max_tokens,
            )
        except (anthropic.APIError, httpx.HTTPError) as e:
            raise InferenceTransportError(f"{type(e).__name__}: {e}") from e

        if response.usage:
            logger.debug(f"[{spec.name}] usage: {response.usage}")

        if not response.content.strip():
            raise InferenceTransportError("provider returned an empty response")

        return extract_json_text(response.content)
