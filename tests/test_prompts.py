"""Tests for prompt rendering and the provider-backed inference collaborator."""

import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from chartinsight.agent.inference import ProviderInference, extract_json_text, output_instructions
from chartinsight.agent.pipeline import InferenceTransportError
from chartinsight.agent.pipelines import build_chained, build_debate, build_multi_timeframe
from chartinsight.agent.prompts import (
    NONE_PROVIDED,
    PERSONA_SYSTEM_PROMPT,
    QUESTION_PROMPT,
    format_value,
    render,
)
from chartinsight.agent.providers import AIResponse
from chartinsight.agent.schemas.stages import (
    ChartInput,
    FeatureOutput,
    PersonaInput,
    QuestionInput,
    TimeframeInput,
)
from chartinsight.models.analysis import AnalysisResult, KeyLevel, KeyLevels


@pytest.fixture
def previous_analysis() -> AnalysisResult:
    return AnalysisResult(
        trend="Bullish",
        structure="Higher Highs, Higher Lows",
        key_levels=KeyLevels(support=[KeyLevel(zone="44000-44500", strength="Strong")]),
        recommendation="Buy the pullback",
        reasoning="Trend is up.",
    )


class TestFormatValue:

    def test_scalars(self):
        assert format_value(None) == NONE_PROVIDED
        assert format_value(True) == "Yes"
        assert format_value(3) == "3"
        assert format_value(2.50) == "2.5"

    def test_string_list(self):
        assert format_value(["a", "b"]) == "- a\n- b"
        assert format_value([]) == NONE_PROVIDED

    def test_model(self, canned):
        rendered = format_value(FeatureOutput(**canned["features"]))

        assert json.loads(rendered)["trend"] == "Bullish"


class TestRender:

    def test_question_prompt(self, chart_image, previous_analysis):
        context = QuestionInput(
            images=[chart_image],
            trading_style="Day Trader",
            question="Is 44000 strong support?",
            previous_analysis=previous_analysis,
        )

        prompt = render(QUESTION_PROMPT, context)

        assert "**Trading Style:** Day Trader" in prompt
        assert "Is 44000 strong support?" in prompt
        assert "Previous Analysis Context" in prompt
        assert "44000-44500 (Strong)" in prompt
        assert chart_image not in prompt

    def test_degraded_previous_analysis_ignored(self, chart_image):
        context = QuestionInput(
            images=[chart_image],
            question="Why?",
            previous_analysis=AnalysisResult.degraded_result("boom"),
        )

        assert "Previous Analysis Context" not in render(QUESTION_PROMPT, context)

    def test_adversarial_persona(self, chart_image):
        context = PersonaInput(images=[chart_image], stance="bearish", adversarial=True)

        prompt = render(PERSONA_SYSTEM_PROMPT, context)

        assert "bearish trader" in prompt
        assert "go SHORT" in prompt
        assert "ignore all bullish signals" in prompt

    def test_non_adversarial_persona(self, chart_image):
        context = PersonaInput(images=[chart_image], stance="bullish", adversarial=False)

        prompt = render(PERSONA_SYSTEM_PROMPT, context)

        assert "Acknowledge the strongest bearish signals" in prompt

    def test_unknown_placeholder(self, chart_image):
        with pytest.raises(KeyError):
            render("{not_a_field}", ChartInput(images=[chart_image]))

    @pytest.mark.parametrize("builder", [build_chained, build_debate])
    def test_every_stage_prompt_renders(self, builder, settings, chart_image):
        """Templates only reference values their input provides."""
        inference = ProviderInference(lambda: None)
        definition = builder(settings)
        for spec in definition.graph.stages:
            if spec.depends_on or spec.optional_inputs:
                continue
            params = dict(spec.params)
            stage_input = spec.input_model(images=[chart_image], **params)
            system, prompt = inference.build_prompts(spec, stage_input)
            assert system
            assert "JSON schema" in prompt

    def test_timeframe_prompt_renders(self, settings, chart_image):
        spec = build_multi_timeframe(settings, image_count=2).graph["timeframe_2"]
        stage_input = TimeframeInput(images=[chart_image] * 2, **spec.params)

        _, prompt = ProviderInference(lambda: None).build_prompts(spec, stage_input)

        assert "Lower timeframe" in prompt


class TestExtractJson:

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"trend": "Bullish"}\n```'

        assert extract_json_text(text) == '{"trend": "Bullish"}'

    def test_no_object(self):
        assert extract_json_text("no json here") == "no json here"

    def test_output_instructions_include_schema(self):
        instructions = output_instructions(FeatureOutput)

        assert '"key_levels"' in instructions


class TestProviderInference:

    @pytest.fixture
    def spec(self, settings):
        return build_chained(settings).graph["features"]

    @pytest.fixture
    def stage_input(self, chart_image):
        return ChartInput(images=[chart_image], trading_style="Scalper")

    @pytest.mark.asyncio
    async def test_calls_provider(self, spec, stage_input, chart_image):
        provider = MagicMock()
        provider.analyze_images = AsyncMock(
            return_value=AIResponse(content='Sure! {"trend": "Bullish"} Hope this helps.')
        )

        raw = await ProviderInference(lambda: provider)(spec, stage_input)

        assert raw == '{"trend": "Bullish"}'
        args, kwargs = provider.analyze_images.call_args
        assert args[0] == [chart_image]
        assert "Scalper" in args[1]
        assert kwargs["system"]
        assert kwargs["model_type"] == "planning"

    @pytest.mark.asyncio
    async def test_missing_api_key(self, spec, stage_input):
        def no_provider():
            raise ValueError("Claude API key not configured.")

        with pytest.raises(InferenceTransportError, match="not configured"):
            await ProviderInference(no_provider)(spec, stage_input)

    @pytest.mark.asyncio
    async def test_anthropic_error(self, spec, stage_input):
        provider = MagicMock()
        provider.analyze_images = AsyncMock(side_effect=anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        ))

        with pytest.raises(InferenceTransportError, match="APIConnectionError"):
            await ProviderInference(lambda: provider)(spec, stage_input)

    @pytest.mark.asyncio
    async def test_httpx_error(self, spec, stage_input):
        provider = MagicMock()
        provider.analyze_images = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(InferenceTransportError, match="ConnectError"):
            await ProviderInference(lambda: provider)(spec, stage_input)

    @pytest.mark.asyncio
    async def test_empty_response(self, spec, stage_input):
        provider = MagicMock()
        provider.analyze_images = AsyncMock(return_value=AIResponse(content="  "))

        with pytest.raises(InferenceTransportError, match="empty"):
            await ProviderInference(lambda: provider)(spec, stage_input)
