"""StageExecutor - runs one stage and always returns a StageResult."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from chartinsight.agent.pipeline.contracts import (
    ContractViolation,
    ErrorKind,
    Failed,
    InferenceTransportError,
    StageResult,
    StageSpec,
    Success,
    validate,
)

logger = logging.getLogger(__name__)

InvokeFn = Callable[[StageSpec, BaseModel], Awaitable[Any]]


class StageExecutor:
    """Wraps a single inference call behind a stage contract.

    Transport errors, timeouts, contract violations and unexpected
    collaborator errors all come back as ``Failed`` values. Only task
    cancellation escapes, so that a caller abort reaches every in-flight
    call. Unexpected errors are ``INTERNAL`` and never retried.
    """

    def __init__(self, invoke: InvokeFn):
        """Initialize the executor.

        Args:
            invoke: Inference collaborator call: ``invoke(spec, stage_input)``
        """
        self._invoke = invoke

    async def execute(
        self,
        spec: StageSpec,
        stage_input: BaseModel,
        invoke: Optional[InvokeFn] = None,
    ) -> StageResult:
        """Execute one stage.

        Args:
            spec: Stage descriptor
            stage_input: Validated, immutable stage input
            invoke: Collaborator override for local stages (e.g. annotation)

        Returns:
            Success with the validated output, or Failed with the reason
        """
        call = invoke or self._invoke
        started = time.monotonic()
        logger.debug(f"[{spec.name}] invoking (timeout={spec.timeout_seconds}s)")

        try:
            raw = await asyncio.wait_for(call(spec, stage_input), timeout=spec.timeout_seconds)
        except asyncio.TimeoutError:
            message = f"timed out after {spec.timeout_seconds:g}s"
            logger.warning(f"[{spec.name}] {message}")
            return Failed(ErrorKind.TRANSPORT, message)
        except InferenceTransportError as e:
            logger.warning(f"[{spec.name}] transport error: {e}")
            return Failed(ErrorKind.TRANSPORT, str(e))
        except ContractViolation as e:
            logger.warning(f"[{spec.name}] {e}")
            return Failed(ErrorKind.VALIDATION, str(e))
        except OSError as e:
            logger.warning(f"[{spec.name}] connection error: {type(e).__name__}: {e}")
            return Failed(ErrorKind.TRANSPORT, f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.error(f"[{spec.name}] unexpected error: {type(e).__name__}: {e}", exc_info=True)
            return Failed(ErrorKind.INTERNAL, f"{type(e).__name__}: {e}")

        try:
            value = validate(raw, spec.output_model)
        except ContractViolation as e:
            logger.warning(f"[{spec.name}] rejected output: {e}")
            return Failed(ErrorKind.VALIDATION, str(e))

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"[{spec.name}] completed in {elapsed_ms}ms")
        return Success(value)
