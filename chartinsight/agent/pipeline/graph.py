"""PipelineGraph - a validated, acyclic set of stages."""

from typing import Dict, List, Sequence

from chartinsight.agent.pipeline.contracts import (
    MergeMode,
    PipelineConfigurationError,
    StageSpec,
)


class PipelineGraph:
    """Stages plus their dependency edges.

    Construction fails with ``PipelineConfigurationError`` when a stage
    name repeats, a dependency is missing, the edges form a cycle, or two
    stages write the same output key without both declaring APPEND.
    """

    def __init__(self, name: str, stages: Sequence[StageSpec]):
        self.name = name
        self._stages: Dict[str, StageSpec] = {}
        self._order: Dict[str, int] = {}

        for index, spec in enumerate(stages):
            if spec.name in self._stages:
                raise PipelineConfigurationError(
                    f"Pipeline '{name}': duplicate stage name '{spec.name}'"
                )
            self._stages[spec.name] = spec
            self._order[spec.name] = index

        if not self._stages:
            raise PipelineConfigurationError(f"Pipeline '{name}' has no stages")

        self._check_dependencies()
        self._check_output_keys()
        self._layers = self._build_layers()

    @property
    def stages(self) -> List[StageSpec]:
        return list(self._stages.values())

    def __contains__(self, stage_name: str) -> bool:
        return stage_name in self._stages

    def __getitem__(self, stage_name: str) -> StageSpec:
        return self._stages[stage_name]

    def __len__(self) -> int:
        return len(self._stages)

    def declaration_index(self, stage_name: str) -> int:
        return self._order[stage_name]

    def layers(self) -> List[List[StageSpec]]:
        """Topological layers; stages within a layer are independent."""
        return [list(layer) for layer in self._layers]

    def writers(self, key: str) -> List[StageSpec]:
        """Stages writing ``key``, in declaration order."""
        return [spec for spec in self._stages.values() if spec.key == key]

    def _check_dependencies(self) -> None:
        for spec in self._stages.values():
            for dep in spec.upstream:
                if dep == spec.name:
                    raise PipelineConfigurationError(
                        f"Pipeline '{self.name}': stage '{spec.name}' depends on itself"
                    )
                if dep not in self._stages:
                    raise PipelineConfigurationError(
                        f"Pipeline '{self.name}': stage '{spec.name}' depends on "
                        f"unknown stage '{dep}'"
                    )

    def _check_output_keys(self) -> None:
        for key in dict.fromkeys(spec.key for spec in self._stages.values()):
            writers = self.writers(key)
            if key in self._stages and self._stages[key].key != key:
                raise PipelineConfigurationError(
                    f"Pipeline '{self.name}': output key '{key}' shadows stage '{key}'"
                )
            if len(writers) > 1 and any(w.merge_mode != MergeMode.APPEND for w in writers):
                names = ", ".join(w.name for w in writers)
                raise PipelineConfigurationError(
                    f"Pipeline '{self.name}': stages {names} write output key '{key}' "
                    "without an explicit APPEND merge"
                )

    def _build_layers(self) -> List[List[StageSpec]]:
        # Kahn's algorithm, grouped by depth; declaration order kept within a layer
        remaining = {name: set(spec.upstream) for name, spec in self._stages.items()}
        layers: List[List[StageSpec]] = []
        placed: set = set()

        while remaining:
            ready = [name for name, deps in remaining.items() if deps <= placed]
            if not ready:
                cycle = ", ".join(sorted(remaining))
                raise PipelineConfigurationError(
                    f"Pipeline '{self.name}' has a dependency cycle among: {cycle}"
                )
            ready.sort(key=self._order.__getitem__)
            layers.append([self._stages[name] for name in ready])
            placed.update(ready)
            for name in ready:
                del remaining[name]

        return layers

