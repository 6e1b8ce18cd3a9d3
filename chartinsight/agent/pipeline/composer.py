"""PipelineComposer - runs a PipelineGraph layer by layer."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ValidationError

from chartinsight.agent.pipeline.contracts import (
    ErrorKind,
    Failed,
    MergeMode,
    StageResult,
    StageSpec,
    Success,
)
from chartinsight.agent.pipeline.executor import StageExecutor
from chartinsight.agent.pipeline.graph import PipelineGraph

logger = logging.getLogger(__name__)

DEADLINE_MESSAGE = "request deadline exceeded"


class StageEventType(str, Enum):
    """Progress events reported to the run observer."""
    STARTED = "started"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageEvent:
    """One stage progress notification."""
    stage: str
    event: StageEventType
    detail: Optional[str] = None
    layer: int = 0


Observer = Callable[[StageEvent], None]


@dataclass
class PipelineRun:
    """Every stage result of one graph execution, in declaration order."""

    graph: PipelineGraph
    results: Dict[str, StageResult] = field(default_factory=dict)

    def result(self, stage_name: str) -> StageResult:
        return self.results[stage_name]

    def value(self, stage_name: str) -> Optional[BaseModel]:
        """Stage output if it succeeded, else None."""
        result = self.results.get(stage_name)
        if isinstance(result, Success):
            return result.value
        return None

    def failure(self, stage_name: str) -> Optional[Failed]:
        result = self.results.get(stage_name)
        return result if isinstance(result, Failed) else None

    @property
    def failures(self) -> Dict[str, Failed]:
        return {name: r for name, r in self.results.items() if isinstance(r, Failed)}

    @property
    def succeeded(self) -> bool:
        return not self.failures


def build_stage_input(
    spec: StageSpec,
    graph: PipelineGraph,
    context: Mapping[str, Any],
    results: Mapping[str, StageResult],
) -> BaseModel:
    """Assemble and validate the input record for one stage.

    The record holds the request context, the stage's static params and the
    Success outputs of the stage's upstream stages under their output keys.
    APPEND keys collect tagged entries (writer name, its static params and
    its output) in declaration order; failed optional inputs are simply
    absent, and the tags keep the surviving entries identifiable.
    """
    record: Dict[str, Any] = dict(context)
    record.update(spec.params)
    appended: Dict[str, List[tuple]] = {}

    for dep_name in spec.upstream:
        dep = graph[dep_name]
        result = results.get(dep_name)
        if dep.merge_mode == MergeMode.APPEND:
            bucket = appended.setdefault(dep.key, [])
            if isinstance(result, Success):
                entry = {**dep.params, "stage": dep_name, "output": result.value}
                bucket.append((graph.declaration_index(dep_name), entry))
        elif isinstance(result, Success):
            record[dep.key] = result.value

    for key, entries in appended.items():
        record[key] = [value for _, value in sorted(entries, key=lambda pair: pair[0])]

    return spec.input_model.model_validate(record)


class PipelineComposer:
    """Runs a graph in topological layers with a barrier between layers.

    Ready stages of a layer run concurrently. A stage whose required
    dependency failed is recorded as an aggregation failure without being
    invoked. Transport failures get one more attempt when the StageSpec allows
    it. The request deadline spans all layers; cancelling the caller's
    task cancels every in-flight stage and re-raises.
    """

    def __init__(self, executor: StageExecutor, deadline_seconds: float = 180.0):
        self.executor = executor
        self.deadline_seconds = deadline_seconds

    async def run(
        self,
        graph: PipelineGraph,
        context: Mapping[str, Any],
        on_event: Optional[Observer] = None,
        deadline_seconds: Optional[float] = None,
    ) -> PipelineRun:
        """Execute every stage of ``graph``.

        Args:
            graph: Validated pipeline graph
            context: Request-derived values shared by every stage input
            on_event: Optional progress observer
            deadline_seconds: Overrides the composer's request deadline

        Returns:
            PipelineRun with exactly one result per stage
        """
        loop = asyncio.get_running_loop()
        budget = self.deadline_seconds if deadline_seconds is None else deadline_seconds
        deadline = loop.time() + budget
        results: Dict[str, StageResult] = {}

        logger.info(f"Running pipeline '{graph.name}' ({len(graph)} stages, deadline {budget:g}s)")

        for layer_index, layer in enumerate(graph.layers()):
            ready: List[StageSpec] = []
            for spec in layer:
                blocked = self._blocked_by(spec, results)
                if blocked is not None:
                    results[spec.name] = blocked
                    self._notify(on_event, StageEvent(
                        spec.name, StageEventType.SKIPPED, blocked.message, layer_index
                    ))
                    continue
                ready.append(spec)

            remaining = deadline - loop.time()
            if remaining <= 0:
                for spec in ready:
                    results[spec.name] = Failed(ErrorKind.TRANSPORT, DEADLINE_MESSAGE)
                    self._notify(on_event, StageEvent(
                        spec.name, StageEventType.FAILED, DEADLINE_MESSAGE, layer_index
                    ))
                continue

            if ready:
                layer_results = await self._run_layer(
                    graph, ready, context, results, remaining, on_event, layer_index
                )
                results.update(layer_results)

        ordered = {spec.name: results[spec.name] for spec in graph.stages}
        run = PipelineRun(graph=graph, results=ordered)
        if run.failures:
            summary = ", ".join(f"{name} ({f.kind.value})" for name, f in run.failures.items())
            logger.warning(f"Pipeline '{graph.name}' finished with failures: {summary}")
        else:
            logger.info(f"Pipeline '{graph.name}' finished: all stages succeeded")
        return run

    async def _run_layer(
        self,
        graph: PipelineGraph,
        ready: List[StageSpec],
        context: Mapping[str, Any],
        results: Mapping[str, StageResult],
        timeout: float,
        on_event: Optional[Observer],
        layer_index: int,
    ) -> Dict[str, StageResult]:
        layer_results: Dict[str, StageResult] = {}
        tasks: Dict[asyncio.Task, StageSpec] = {}

        for spec in ready:
            try:
                stage_input = build_stage_input(spec, graph, context, results)
            except ValidationError as e:
                message = f"invalid stage input: {e.error_count()} error(s): {e.errors(include_url=False)[0]['msg']}"
                logger.error(f"[{spec.name}] {message}")
                layer_results[spec.name] = Failed(ErrorKind.VALIDATION, message)
                self._notify(on_event, StageEvent(
                    spec.name, StageEventType.FAILED, message, layer_index
                ))
                continue

            self._notify(on_event, StageEvent(spec.name, StageEventType.STARTED, layer=layer_index))
            task = asyncio.create_task(
                self._run_stage(spec, stage_input, on_event, layer_index),
                name=f"{graph.name}:{spec.name}",
            )
            tasks[task] = spec

        if not tasks:
            return layer_results

        try:
            done, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
        except asyncio.CancelledError:
            logger.warning(f"Pipeline '{graph.name}' cancelled; cancelling {len(tasks)} stage(s)")
            await self._cancel(tasks.keys())
            raise

        for task in done:
            spec = tasks[task]
            layer_results[spec.name] = task.result()

        if pending:
            await self._cancel(pending)
            for task in pending:
                spec = tasks[task]
                logger.warning(f"[{spec.name}] cancelled: {DEADLINE_MESSAGE}")
                layer_results[spec.name] = Failed(ErrorKind.TRANSPORT, DEADLINE_MESSAGE)
                self._notify(on_event, StageEvent(
                    spec.name, StageEventType.FAILED, DEADLINE_MESSAGE, layer_index
                ))

        return layer_results

    async def _run_stage(
        self,
        spec: StageSpec,
        stage_input: BaseModel,
        on_event: Optional[Observer],
        layer_index: int,
    ) -> StageResult:
        result = await self.executor.execute(spec, stage_input)

        if isinstance(result, Failed) and result.kind == ErrorKind.TRANSPORT and spec.retries:
            logger.info(f"[{spec.name}] retrying after transport failure: {result.message}")
            self._notify(on_event, StageEvent(
                spec.name, StageEventType.RETRYING, result.message, layer_index
            ))
            result = await self.executor.execute(spec, stage_input)

        if isinstance(result, Success):
            self._notify(on_event, StageEvent(spec.name, StageEventType.COMPLETED, layer=layer_index))
        else:
            self._notify(on_event, StageEvent(
                spec.name, StageEventType.FAILED, result.describe(), layer_index
            ))
        return result

    @staticmethod
    def _blocked_by(spec: StageSpec, results: Mapping[str, StageResult]) -> Optional[Failed]:
        for dep in spec.depends_on:
            upstream = results.get(dep)
            if isinstance(upstream, Failed):
                return Failed(
                    ErrorKind.AGGREGATION,
                    f"upstream stage '{dep}' failed ({upstream.describe()})",
                )
        return None

    @staticmethod
    async def _cancel(tasks) -> None:
        tasks = list(tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _notify(on_event: Optional[Observer], event: StageEvent) -> None:
        if on_event is None:
            return
        try:
            on_event(event)
        except Exception as e:
            logger.warning(f"Stage observer raised for '{event.stage}': {e}")
