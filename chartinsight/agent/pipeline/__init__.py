"""Stage pipeline core: contracts, executor, graph and composer."""

from chartinsight.agent.pipeline.contracts import (
    ContractViolation,
    ErrorKind,
    Failed,
    InferenceTransportError,
    MergeMode,
    PipelineConfigurationError,
    StageResult,
    StageSpec,
    Success,
    validate,
)
from chartinsight.agent.pipeline.executor import StageExecutor
from chartinsight.agent.pipeline.graph import PipelineGraph
from chartinsight.agent.pipeline.composer import (
    PipelineComposer,
    PipelineRun,
    StageEvent,
    StageEventType,
)

__all__ = [
    "ContractViolation",
    "ErrorKind",
    "Failed",
    "InferenceTransportError",
    "MergeMode",
    "PipelineConfigurationError",
    "StageResult",
    "StageSpec",
    "Success",
    "validate",
    "StageExecutor",
    "PipelineGraph",
    "PipelineComposer",
    "PipelineRun",
    "StageEvent",
    "StageEventType",
]
