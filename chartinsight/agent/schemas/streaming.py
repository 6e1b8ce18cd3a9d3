"""Streaming event schemas for the Server-Sent Events endpoint.

Events flow: pipeline_started -> stage_progress (per stage transition)
-> final_result, or error when the request itself is rejected.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from chartinsight.agent.pipeline.composer import StageEvent


class StreamEventType(str, Enum):
    """Types of streaming events."""
    PIPELINE_STARTED = "pipeline_started"
    STAGE_PROGRESS = "stage_progress"
    FINAL_RESULT = "final_result"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One SSE event."""

    type: StreamEventType = Field(description="Event type.")
    timestamp: float = Field(description="Unix timestamp when the event was emitted.")

    pipeline: Optional[str] = Field(default=None, description="Pipeline variant being run.")
    stages: List[str] = Field(
        default_factory=list,
        description="For pipeline_started: every stage in declaration order."
    )

    # Stage progress
    stage: Optional[str] = Field(default=None, description="For stage_progress: stage name.")
    status: Optional[str] = Field(
        default=None,
        description="For stage_progress: started, retrying, completed, failed or skipped."
    )
    detail: Optional[str] = Field(default=None, description="Failure or retry reason.")
    layer: Optional[int] = Field(default=None, description="Topological layer of the stage.")

    # Final result
    record_id: Optional[str] = Field(default=None, description="Stored analysis id, if any.")
    result: Optional[Dict[str, Any]] = Field(default=None, description="Serialized AnalysisResult.")

    error_message: Optional[str] = None

    @classmethod
    def pipeline_started(cls, pipeline: str, stages: List[str]) -> "StreamEvent":
        return cls(
            type=StreamEventType.PIPELINE_STARTED,
            timestamp=time.time(),
            pipeline=pipeline,
            stages=stages,
        )

    @classmethod
    def stage_progress(cls, event: StageEvent) -> "StreamEvent":
        """Create a progress event from a composer stage event."""
        return cls(
            type=StreamEventType.STAGE_PROGRESS,
            timestamp=time.time(),
            stage=event.stage,
            status=event.event.value,
            detail=event.detail,
            layer=event.layer,
        )

    @classmethod
    def final_result(
        cls,
        result: Dict[str, Any],
        pipeline: str,
        record_id: Optional[str] = None,
    ) -> "StreamEvent":
        return cls(
            type=StreamEventType.FINAL_RESULT,
            timestamp=time.time(),
            pipeline=pipeline,
            result=result,
            record_id=record_id,
        )

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(type=StreamEventType.ERROR, timestamp=time.time(), error_message=message)

    def to_sse(self) -> str:
        """Format as an SSE data frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
