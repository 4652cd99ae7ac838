"""
The stage catalog: the fixed, ordered pipeline an applicant moves through.

The catalog is immutable and is handed to the lifecycle engine explicitly,
so tests (or another deployment) can run the same engine on a different pipeline.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Stage:
    """One selection stage and the score categories that are marked in it."""
    name: str
    rounds: Tuple[str, ...] = ()
    score_categories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StageCatalog:
    """
    Ordered stages. Order defines the only legal promotion direction: s[i] -> s[i+1].

    Invariants:
    - At least one stage
    - Stage names are unique
    - A score category belongs to exactly one stage
    """
    stages: Tuple[Stage, ...]

    def __post_init__(self):
        if not self.stages:
            raise ValueError("A stage catalog needs at least one stage")
        names = [s.name for s in self.stages]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names in catalog: {names}")
        categories = [c for s in self.stages for c in s.score_categories]
        if len(set(categories)) != len(categories):
            raise ValueError(f"Score categories must be unique across stages: {categories}")

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.stages]

    @property
    def initial(self) -> str:
        return self.stages[0].name

    @property
    def score_categories(self) -> Tuple[str, ...]:
        """All score categories, in stage order. These are the canonical export columns."""
        return tuple(c for s in self.stages for c in s.score_categories)

    def __contains__(self, stage_name: object) -> bool:
        return stage_name in self.names

    def index_of(self, stage_name: str) -> int:
        """Position of a stage, or -1 if the catalog does not know it."""
        try:
            return self.names.index(stage_name)
        except ValueError:
            return -1

    def next_stage(self, stage_name: str) -> Optional[str]:
        """The stage after ``stage_name``; None for the final stage or an unknown stage."""
        idx = self.index_of(stage_name)
        if idx == -1 or idx == len(self.stages) - 1:
            return None
        return self.stages[idx + 1].name

    def describe(self) -> List[Dict[str, object]]:
        return [
            {
                "name": s.name,
                "rounds": list(s.rounds),
                "score_categories": list(s.score_categories),
            }
            for s in self.stages
        ]


DEFAULT_CATALOG = StageCatalog(stages=(
    Stage("Physical", rounds=("Running", "Pushups", "Situps"), score_categories=("Physical",)),
    Stage("GD", rounds=("Group Discussion",), score_categories=("GD",)),
    Stage("Interview", rounds=("Interview",), score_categories=("Interview",)),
    Stage("Final Merit", rounds=("Final",)),
))
