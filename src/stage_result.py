"""
Tagged outcomes returned by each pipeline stage.

A stage either produced its value (Ok), asks the orchestrator to route to
fallback synthesis (Degrade), or failed with a typed error (Fail).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class DegradeReason(str, Enum):
    STRUCTURAL_CORRUPTION = "structural-corruption"
    NO_FILLABLE_FIELDS = "no-fillable-fields"


@dataclass
class Ok:
    value: Any

    @property
    def tag(self) -> str:
        return "ok"


@dataclass
class Degrade:
    reason: DegradeReason
    detail: str = ""

    @property
    def tag(self) -> str:
        return f"degrade:{self.reason.value}"


@dataclass
class Fail:
    error: Exception

    @property
    def tag(self) -> str:
        return f"fail:{type(self.error).__name__}"


StageResult = Union[Ok, Degrade, Fail]
