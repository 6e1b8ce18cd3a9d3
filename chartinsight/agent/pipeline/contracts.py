"""Stage contracts: descriptors, typed results and output validation.

Every stage declares an input model and a strictly typed output model.
Inference output is validated here before anything downstream sees it;
a response that fails validation is discarded as a whole.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError


T = TypeVar("T", bound=BaseModel)


class ErrorKind(str, Enum):
    """Why a stage produced no value."""
    VALIDATION = "validation_error"
    TRANSPORT = "transport_error"
    AGGREGATION = "aggregation_error"
    # A bug in the collaborator or local stage code; retrying cannot help
    INTERNAL = "internal_error"


class MergeMode(str, Enum):
    """How a stage output is placed under its output key."""
    # The key belongs to exactly one stage
    UNIQUE = "unique"
    # Several stages append to an ordered list under the same key; each entry
    # carries the writer's name and static params next to its output
    APPEND = "append"


class ContractViolation(Exception):
    """Raised when raw inference output does not satisfy a stage contract."""

    def __init__(self, shape: Type[BaseModel], detail: str):
        self.shape = shape
        self.detail = detail
        super().__init__(f"{shape.__name__} contract violated: {detail}")


class InferenceTransportError(Exception):
    """Raised by inference collaborators for timeouts, connectivity and non-2xx responses."""


class PipelineConfigurationError(Exception):
    """Raised when a pipeline graph is malformed."""


@dataclass(frozen=True)
class StageSpec:
    """Static descriptor of one stage.

    Attributes:
        name: Unique stage name within a graph
        prompt: Prompt template rendered with the validated stage input
        input_model: Shape of the record the stage is invoked with
        output_model: Shape the inference output must satisfy
        depends_on: Stages whose Success outputs are required
        optional_inputs: Stages whose outputs are used when available
        system_prompt: Optional system prompt template
        timeout_seconds: Bound on a single inference call
        retries: Extra attempts after a transport failure (0 or 1)
        output_key: Key the output is exposed under to dependent stages
        merge_mode: UNIQUE or APPEND for shared output keys
        params: Static values merged into the stage input
        model_type: Provider model tier ("planning" or "fast")
    """

    name: str
    prompt: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    depends_on: Tuple[str, ...] = ()
    optional_inputs: Tuple[str, ...] = ()
    system_prompt: Optional[str] = None
    timeout_seconds: float = 60.0
    retries: int = 0
    output_key: Optional[str] = None
    merge_mode: MergeMode = MergeMode.UNIQUE
    params: Mapping[str, Any] = field(default_factory=dict)
    model_type: str = "planning"
    max_tokens: int = 4000

    def __post_init__(self):
        if not self.name:
            raise PipelineConfigurationError("Stage name must not be empty")
        if self.timeout_seconds <= 0:
            raise PipelineConfigurationError(f"Stage '{self.name}' timeout must be positive")
        if self.retries not in (0, 1):
            raise PipelineConfigurationError(f"Stage '{self.name}' retries must be 0 or 1")
        overlap = set(self.depends_on) & set(self.optional_inputs)
        if overlap:
            raise PipelineConfigurationError(
                f"Stage '{self.name}' lists {sorted(overlap)} as both required and optional"
            )
        # Freeze params so a spec stays immutable after startup
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def key(self) -> str:
        return self.output_key or self.name

    @property
    def upstream(self) -> Tuple[str, ...]:
        return self.depends_on + self.optional_inputs


@dataclass(frozen=True)
class Success(Generic[T]):
    """A stage that produced a contract-valid value."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """A stage that produced no value."""
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False

    def describe(self) -> str:
        return f"{self.kind.value}: {self.message}"


StageResult = Union[Success, Failed]


def validate(raw: Any, shape: Type[T]) -> T:
    """Validate raw inference output against a stage contract.

    Args:
        raw: Decoded JSON mapping, or the raw response text
        shape: Pydantic model the output must satisfy

    Returns:
        A validated instance of ``shape``

    Raises:
        ContractViolation: If fields are missing, mistyped or out of range,
            or if the text is not JSON
    """
    if isinstance(raw, shape):
        raw = raw.model_dump(mode="json")

    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        payload = raw
    else:
        try:
            payload = json.dumps(raw)
        except (TypeError, ValueError) as e:
            raise ContractViolation(shape, f"output is not JSON serializable: {e}") from e

    try:
        # Strict JSON mode: "7" is not an int, "Maybe" is not a lifecycle status
        return shape.model_validate_json(payload, strict=True)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        summary = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or '<root>'}: {err['msg']}"
            for err in errors[:5]
        )
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        raise ContractViolation(shape, summary) from e
