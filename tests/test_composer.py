"""Tests for PipelineComposer scheduling, failure propagation and deadlines."""

import asyncio

import pytest

from chartinsight.agent.pipeline import (
    ErrorKind,
    Failed,
    InferenceTransportError,
    MergeMode,
    PipelineComposer,
    PipelineGraph,
    StageEventType,
    StageExecutor,
    StageSpec,
    Success,
)
from chartinsight.agent.pipeline.composer import DEADLINE_MESSAGE, build_stage_input
from chartinsight.agent.pipelines import build_chained
from chartinsight.agent.schemas.stages import (
    ChartInput,
    FeatureOutput,
    SynthesisInput,
    TimeframeInput,
    TimeframeReport,
    TimeframeSynthesisInput,
    TimeframeSynthesisOutput,
)


def feature_stage(name, **kwargs) -> StageSpec:
    kwargs.setdefault("timeout_seconds", 2.0)
    return StageSpec(name=name, prompt="", input_model=ChartInput, output_model=FeatureOutput, **kwargs)


@pytest.fixture
def context(chart_image):
    return {"images": [chart_image], "trading_style": "Swing Trader", "question": None, "previous_analysis": None}


def composer_for(inference, deadline=5.0) -> PipelineComposer:
    return PipelineComposer(StageExecutor(inference), deadline_seconds=deadline)


def timeframe_stage(index: int) -> StageSpec:
    return StageSpec(
        name=f"tf_{index}",
        prompt="",
        input_model=TimeframeInput,
        output_model=TimeframeReport,
        output_key="timeframes",
        merge_mode=MergeMode.APPEND,
        params={"image_index": index, "timeframe_label": f"TF{index}"},
    )


class TestScheduling:
    """Layers run concurrently with a barrier between them."""

    @pytest.mark.asyncio
    async def test_independent_stages_run_concurrently(self, scripted, context):
        inference = scripted(delays={"a": 0.2, "b": 0.2, "c": 0.2})
        graph = PipelineGraph("fan_out", [feature_stage("a"), feature_stage("b"), feature_stage("c")])

        loop = asyncio.get_running_loop()
        started = loop.time()
        run = await composer_for(inference).run(graph, context)
        elapsed = loop.time() - started

        assert run.succeeded
        assert inference.max_active == 3
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_barrier_between_layers(self, scripted, context):
        inference = scripted(delays={"a": 0.1, "b": 0.2})
        graph = PipelineGraph("barrier", [
            feature_stage("a"),
            feature_stage("b"),
            feature_stage("c", depends_on=("a",)),
        ])
        events = []

        await composer_for(inference).run(graph, context, on_event=events.append)

        order = [(e.stage, e.event) for e in events]
        c_started = order.index(("c", StageEventType.STARTED))
        assert order.index(("a", StageEventType.COMPLETED)) < c_started
        assert order.index(("b", StageEventType.COMPLETED)) < c_started

    @pytest.mark.asyncio
    async def test_results_in_declaration_order(self, scripted, context):
        inference = scripted(delays={"first": 0.1})
        graph = PipelineGraph("order", [
            feature_stage("last", depends_on=("first",)),
            feature_stage("first"),
            feature_stage("middle"),
        ])

        run = await composer_for(inference).run(graph, context)

        assert list(run.results) == ["last", "first", "middle"]

    @pytest.mark.asyncio
    async def test_stage_input_carries_upstream_output(self, scripted, settings, context):
        inference = scripted()
        graph = build_chained(settings).graph

        await composer_for(inference).run(graph, context)

        synthesis_input = inference.inputs("synthesis")[0]
        assert isinstance(synthesis_input, SynthesisInput)
        assert synthesis_input.features.trend == "Bullish"
        assert synthesis_input.patterns.patterns[0].name == "Bull Flag"
        assert synthesis_input.trading_style == "Swing Trader"


class TestFailurePropagation:
    """Failed dependencies and bounded retries."""

    @pytest.mark.asyncio
    async def test_failed_required_dependency_skips_stage(self, scripted, context):
        inference = scripted({"a": InferenceTransportError("down")})
        graph = PipelineGraph("skip", [
            feature_stage("a"),
            feature_stage("b"),
            feature_stage("c", depends_on=("a", "b")),
        ])
        events = []

        run = await composer_for(inference).run(graph, context, on_event=events.append)

        failure = run.failure("c")
        assert failure.kind == ErrorKind.AGGREGATION
        assert "'a'" in failure.message
        assert isinstance(run.result("b"), Success)
        assert inference.call_count("c") == 0
        assert ("c", StageEventType.SKIPPED) in [(e.stage, e.event) for e in events]

    @pytest.mark.asyncio
    async def test_aggregation_failure_cascades(self, scripted, context):
        inference = scripted({"a": InferenceTransportError("down")})
        graph = PipelineGraph("cascade", [
            feature_stage("a"),
            feature_stage("b", depends_on=("a",)),
            feature_stage("c", depends_on=("b",)),
        ])

        run = await composer_for(inference).run(graph, context)

        assert run.failure("c").kind == ErrorKind.AGGREGATION
        assert inference.call_count("b") == inference.call_count("c") == 0

    @pytest.mark.asyncio
    async def test_failed_optional_input_is_absent(self, scripted, settings, context):
        inference = scripted({"patterns": InferenceTransportError("down")})
        graph = build_chained(settings).graph

        run = await composer_for(inference).run(graph, context)

        assert isinstance(run.result("synthesis"), Success)
        assert inference.inputs("synthesis")[0].patterns is None

    @pytest.mark.asyncio
    async def test_transport_failure_retried_once(self, scripted, canned, context):
        inference = scripted({"a": [InferenceTransportError("blip"), canned["features"]]})
        graph = PipelineGraph("retry", [feature_stage("a", retries=1)])
        events = []

        run = await composer_for(inference).run(graph, context, on_event=events.append)

        assert isinstance(run.result("a"), Success)
        assert inference.call_count("a") == 2
        assert [e.event for e in events] == [
            StageEventType.STARTED, StageEventType.RETRYING, StageEventType.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_retry_is_bounded(self, scripted, context):
        inference = scripted({"a": InferenceTransportError("down")})
        graph = PipelineGraph("bounded", [feature_stage("a", retries=1)])

        run = await composer_for(inference).run(graph, context)

        assert run.failure("a").kind == ErrorKind.TRANSPORT
        assert inference.call_count("a") == 2

    @pytest.mark.asyncio
    async def test_validation_failure_not_retried(self, scripted, context):
        inference = scripted({"a": {"trend": "Bullish"}})
        graph = PipelineGraph("no_retry", [feature_stage("a", retries=1)])

        run = await composer_for(inference).run(graph, context)

        assert run.failure("a").kind == ErrorKind.VALIDATION
        assert inference.call_count("a") == 1

    @pytest.mark.asyncio
    async def test_internal_error_not_retried(self, scripted, context):
        inference = scripted({"a": KeyError("missing")})
        graph = PipelineGraph("bug", [feature_stage("a", retries=1)])
        events = []

        run = await composer_for(inference).run(graph, context, on_event=events.append)

        assert run.failure("a").kind == ErrorKind.INTERNAL
        assert inference.call_count("a") == 1
        assert StageEventType.RETRYING not in [e.event for e in events]

    @pytest.mark.asyncio
    async def test_invalid_stage_input_is_validation_failure(self, scripted, context):
        graph = PipelineGraph("bad_input", [
            StageSpec(name="tf", prompt="", input_model=TimeframeInput, output_model=TimeframeReport),
        ])

        run = await composer_for(scripted()).run(graph, context)

        assert run.failure("tf").kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_observer_errors_do_not_break_run(self, scripted, context):
        def broken_observer(event):
            raise RuntimeError("observer down")

        graph = PipelineGraph("observed", [feature_stage("a")])

        run = await composer_for(scripted()).run(graph, context, on_event=broken_observer)

        assert run.succeeded


class TestDeadline:
    """The request deadline spans every layer."""

    @pytest.mark.asyncio
    async def test_slow_stage_fails_at_deadline(self, scripted, context):
        inference = scripted(delays={"slow": 1.0})
        graph = PipelineGraph("deadline", [
            feature_stage("slow"),
            feature_stage("fast"),
            feature_stage("after", depends_on=("slow",)),
        ])

        loop = asyncio.get_running_loop()
        started = loop.time()
        run = await composer_for(inference, deadline=0.1).run(graph, context)

        assert loop.time() - started < 0.8
        assert run.result("slow") == Failed(ErrorKind.TRANSPORT, DEADLINE_MESSAGE)
        assert isinstance(run.result("fast"), Success)
        assert run.failure("after").kind == ErrorKind.AGGREGATION

    @pytest.mark.asyncio
    async def test_later_layers_fail_once_deadline_passed(self, scripted, context):
        inference = scripted(delays={"a": 0.5, "b": 0.5})
        graph = PipelineGraph("late", [
            feature_stage("a"),
            feature_stage("b", optional_inputs=("a",)),
        ])

        run = await composer_for(inference).run(graph, context, deadline_seconds=0.1)

        assert run.result("a") == Failed(ErrorKind.TRANSPORT, DEADLINE_MESSAGE)
        assert run.result("b") == Failed(ErrorKind.TRANSPORT, DEADLINE_MESSAGE)


class TestCancellation:
    """Cancelling the caller reaches every in-flight stage."""

    @pytest.mark.asyncio
    async def test_cancel_propagates_to_stages(self, context):
        started = asyncio.Event()
        cancelled = []

        async def slow_invoke(spec, stage_input):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(spec.name)
                raise

        graph = PipelineGraph("cancel", [
            feature_stage("a", timeout_seconds=30),
            feature_stage("b", timeout_seconds=30),
        ])
        task = asyncio.create_task(composer_for(slow_invoke, deadline=30).run(graph, context))
        await started.wait()
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert sorted(cancelled) == ["a", "b"]


class TestAppendMerge:
    """APPEND keys collect outputs in declaration order."""

    @pytest.mark.asyncio
    async def test_append_order_follows_declaration(self, scripted, canned, chart_image):
        reports = {
            f"tf_{i}": {**canned["timeframe"], "pattern": f"pattern {i}"} for i in range(3)
        }
        inference = scripted(reports, delays={"tf_0": 0.2, "tf_1": 0.1})
        stages = [timeframe_stage(i) for i in range(3)]
        stages.append(StageSpec(
            name="synthesis",
            prompt="",
            input_model=TimeframeSynthesisInput,
            output_model=TimeframeSynthesisOutput,
            depends_on=("tf_0",),
            optional_inputs=("tf_1", "tf_2"),
        ))
        graph = PipelineGraph("append", stages)
        context = {"images": [chart_image] * 3}

        run = await composer_for(inference).run(graph, context)

        assert run.succeeded
        synthesis_input = inference.inputs("synthesis")[0]
        assert [e.output.pattern for e in synthesis_input.timeframes] == ["pattern 0", "pattern 1", "pattern 2"]
        assert [e.stage for e in synthesis_input.timeframes] == ["tf_0", "tf_1", "tf_2"]

    def test_failed_append_writer_is_left_out(self, canned, chart_image):
        synthesis = StageSpec(
            name="synthesis",
            prompt="",
            input_model=TimeframeSynthesisInput,
            output_model=TimeframeSynthesisOutput,
            depends_on=("tf_0",),
            optional_inputs=("tf_1",),
        )
        graph = PipelineGraph("append", [timeframe_stage(0), timeframe_stage(1), synthesis])
        results = {
            "tf_0": Success(TimeframeReport(**canned["timeframe"])),
            "tf_1": Failed(ErrorKind.TRANSPORT, "down"),
        }

        stage_input = build_stage_input(synthesis, graph, {"images": [chart_image] * 2}, results)

        assert len(stage_input.timeframes) == 1
        assert stage_input.timeframes[0].timeframe_label == "TF0"
        assert stage_input.attachments() == [chart_image]
