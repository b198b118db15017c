"""
Migration Orchestrator — the step-wizard as an explicit state machine.

    upload → customers → products → employees → vehicles
           → transactions → loyalty → validation

Moving back to any reached stage is always allowed. Moving forward is only
allowed one stage at a time, and only after the current stage is completed
or skipped. Nothing here ever completes or skips a stage on its own; that
is always the operator's call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


class StageTransitionError(ValueError):
    """Raised for a wizard move the state machine does not allow."""


class MigrationStage(str, Enum):
    UPLOAD = "upload"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    EMPLOYEES = "employees"
    VEHICLES = "vehicles"
    TRANSACTIONS = "transactions"
    LOYALTY = "loyalty"
    VALIDATION = "validation"

    @property
    def step(self) -> int:
        return STAGE_ORDER.index(self) + 1

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_ORDER: tuple[MigrationStage, ...] = tuple(MigrationStage)

STAGE_LABELS = {
    MigrationStage.UPLOAD: "Upload CSVs",
    MigrationStage.CUSTOMERS: "Customers",
    MigrationStage.PRODUCTS: "Products",
    MigrationStage.EMPLOYEES: "Employees",
    MigrationStage.VEHICLES: "Vehicles",
    MigrationStage.TRANSACTIONS: "Transactions",
    MigrationStage.LOYALTY: "Loyalty",
    MigrationStage.VALIDATION: "Validation",
}

SKIPPABLE_STAGES = frozenset(
    {
        MigrationStage.PRODUCTS,
        MigrationStage.EMPLOYEES,
        MigrationStage.VEHICLES,
        MigrationStage.TRANSACTIONS,
        MigrationStage.LOYALTY,
    }
)


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


_PASSABLE = frozenset({StageStatus.COMPLETED, StageStatus.SKIPPED})


@dataclass(frozen=True)
class StageResult:
    stage: MigrationStage
    status: StageStatus
    count: int = 0
    message: str = ""
    errors: tuple[str, ...] = ()

    @classmethod
    def pending(cls, stage: MigrationStage) -> "StageResult":
        return cls(stage=stage, status=StageStatus.PENDING)


@dataclass
class MigrationOrchestrator:
    current_stage: MigrationStage = MigrationStage.UPLOAD
    _results: dict[MigrationStage, StageResult] = field(default_factory=dict)
    _furthest: int = 0

    def __post_init__(self) -> None:
        for stage in STAGE_ORDER:
            self._results.setdefault(stage, StageResult.pending(stage))
        self._furthest = max(self._furthest, STAGE_ORDER.index(self.current_stage))

    # ── Queries ───────────────────────────────────────────────────────

    def result(self, stage: MigrationStage) -> StageResult:
        return self._results[stage]

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self._results.values() if r.status == StageStatus.COMPLETED)

    @property
    def next_stage(self) -> MigrationStage | None:
        index = STAGE_ORDER.index(self.current_stage)
        if index + 1 >= len(STAGE_ORDER):
            return None
        return STAGE_ORDER[index + 1]

    def can_go_to(self, stage: MigrationStage) -> bool:
        target = STAGE_ORDER.index(stage)
        current = STAGE_ORDER.index(self.current_stage)
        if target <= current:
            return target <= self._furthest
        if target == current + 1:
            return self.result(self.current_stage).status in _PASSABLE
        return False

    def snapshot(self) -> dict[str, Any]:
        return {
            "current_stage": self.current_stage.value,
            "completed_count": self.completed_count,
            "stages": [
                {
                    "stage": stage.value,
                    "step": stage.step,
                    "label": stage.label,
                    "status": self._results[stage].status.value,
                    "count": self._results[stage].count,
                    "message": self._results[stage].message,
                    "errors": list(self._results[stage].errors),
                }
                for stage in STAGE_ORDER
            ],
        }

    # ── Transitions ───────────────────────────────────────────────────

    def go_to(self, stage: MigrationStage) -> MigrationStage:
        if not self.can_go_to(stage):
            raise StageTransitionError(
                f"Cannot move from {self.current_stage.value} "
                f"({self.result(self.current_stage).status.value}) to {stage.value}"
            )
        self.current_stage = stage
        self._furthest = max(self._furthest, STAGE_ORDER.index(stage))
        logger.info("migration.stage.entered", stage=stage.value)
        return stage

    def advance(self) -> MigrationStage:
        upcoming = self.next_stage
        if upcoming is None:
            raise StageTransitionError("Already at the final stage")
        return self.go_to(upcoming)

    def record(self, result: StageResult) -> StageResult:
        """Store a stage result. A completed stage only accepts another completed result."""
        existing = self._results[result.stage]
        if existing.status == StageStatus.COMPLETED and result.status != StageStatus.COMPLETED:
            logger.warning(
                "migration.stage.regression_ignored",
                stage=result.stage.value,
                attempted=result.status.value,
            )
            return existing
        self._results[result.stage] = result
        logger.info(
            "migration.stage.recorded",
            stage=result.stage.value,
            status=result.status.value,
            count=result.count,
            errors=len(result.errors),
        )
        return result

    def start(self, stage: MigrationStage) -> StageResult:
        return self.record(StageResult(stage=stage, status=StageStatus.IN_PROGRESS))

    def skip(self, stage: MigrationStage, message: str = "Skipped by operator") -> StageResult:
        if stage not in SKIPPABLE_STAGES:
            raise StageTransitionError(f"Stage {stage.value} cannot be skipped")
        return self.record(StageResult(stage=stage, status=StageStatus.SKIPPED, message=message))
