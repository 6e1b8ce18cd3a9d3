"""Degradation policy: turns a finished run into exactly one result.

Mandatory stage failures produce the pipeline's sentinel result with the
underlying reason. Optional stage failures are logged and leave the
corresponding field unset.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Tuple, TypeVar

from pydantic import BaseModel, ValidationError

from chartinsight.agent.pipeline.composer import PipelineRun
from chartinsight.agent.pipeline.contracts import ErrorKind, Failed, StageResult, Success

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


@dataclass(frozen=True)
class DegradationPolicy(Generic[R]):
    """Per-pipeline rule for fatal versus cosmetic failures.

    Attributes:
        pipeline: Pipeline name recorded in degraded results
        mandatory: Stages whose failure degrades the whole result
        fallback: Builds the sentinel result from a failure message
    """

    pipeline: str
    mandatory: Tuple[str, ...]
    fallback: Callable[[str], R]

    def root_failure(self, run: PipelineRun) -> Optional[Tuple[str, Failed]]:
        """First mandatory failure, preferring an original cause over an aggregation."""
        failed = [
            (name, run.failure(name)) for name in self.mandatory
            if run.failure(name) is not None
        ]
        if not failed:
            return None
        for name, failure in failed:
            if failure.kind != ErrorKind.AGGREGATION:
                return name, failure
        # Every mandatory failure was inherited; report the original upstream cause
        for name, failure in run.failures.items():
            if failure.kind != ErrorKind.AGGREGATION:
                return name, failure
        return failed[0]

    def finalize(self, run: PipelineRun, merge: Callable[[PipelineRun], R]) -> R:
        """Build the result of a finished run.

        Args:
            run: Every stage result of the run
            merge: Strategy combining Success outputs into the result

        Returns:
            The merged result, or the sentinel result if a mandatory stage
            failed or the merge itself rejected the outputs
        """
        root = self.root_failure(run)
        if root is not None:
            name, failure = root
            message = f"stage '{name}' failed with {failure.describe()}"
            logger.warning(f"Pipeline '{self.pipeline}' degraded: {message}")
            return self.fallback(message)

        for name, failure in run.failures.items():
            logger.warning(
                f"Pipeline '{self.pipeline}': optional stage '{name}' failed "
                f"({failure.describe()}); continuing without it"
            )

        try:
            return merge(run)
        except (ValueError, ValidationError) as e:
            message = f"merging stage outputs failed: {e}"
            logger.error(f"Pipeline '{self.pipeline}' degraded: {message}")
            return self.fallback(message)

    def enrich(self, result: R, field: str, stage_name: str, stage_result: StageResult) -> R:
        """Apply a best-effort stage output to a finished result.

        A failed optional stage leaves ``result`` untouched.
        """
        if isinstance(stage_result, Success):
            value = getattr(stage_result.value, field)
            return result.model_copy(update={field: value})
        logger.warning(
            f"Pipeline '{self.pipeline}': optional stage '{stage_name}' failed "
            f"({stage_result.describe()}); '{field}' left unset"
        )
        return result
