"""
Periodization Model Selection

Two models, chosen by training age alone:
- Linear{weeks} for lifters with under six months of training
- Undulating4Week (2 accumulation, 1 intensification, 1 deload) otherwise

The model is fixed once a program is generated; it is stored on the
program and rebuilt from that record during progression.
"""

from dataclasses import dataclass
from typing import Union

from .constants import (
    LINEAR_BLOCK_WEEKS,
    LINEAR_EXPERIENCE_THRESHOLD_MONTHS,
    UNDULATING_ACCUMULATION_WEEKS,
    UNDULATING_DELOAD_WEEKS,
    UNDULATING_INTENSIFICATION_WEEKS,
)
from .profile import UserProfile


@dataclass(frozen=True)
class Linear:
    weeks: int = LINEAR_BLOCK_WEEKS
    kind: str = "linear"

    @property
    def block_weeks(self) -> int:
        return self.weeks

    def week_role(self, week_number: int) -> str:
        return "accumulation"

    def describe(self) -> str:
        return (
            f"Linear progression in {self.weeks}-week blocks: add reps, then sets, "
            f"and increase load only when a new block starts."
        )

    def as_dict(self) -> dict:
        return {"kind": self.kind, "weeks": self.weeks}


@dataclass(frozen=True)
class Undulating4Week:
    accumulation_weeks: int = UNDULATING_ACCUMULATION_WEEKS
    intensification_weeks: int = UNDULATING_INTENSIFICATION_WEEKS
    deload_weeks: int = UNDULATING_DELOAD_WEEKS
    kind: str = "undulating_4_week"

    @property
    def block_weeks(self) -> int:
        return self.accumulation_weeks + self.intensification_weeks + self.deload_weeks

    def week_role(self, week_number: int) -> str:
        """Role of a 1-indexed program week inside its block."""
        position = (week_number - 1) % self.block_weeks + 1
        if position <= self.accumulation_weeks:
            return "accumulation"
        if position <= self.accumulation_weeks + self.intensification_weeks:
            return "intensification"
        return "deload"

    def describe(self) -> str:
        return (
            f"Undulating 4-week blocks: {self.accumulation_weeks} accumulation weeks, "
            f"{self.intensification_weeks} intensification week, "
            f"{self.deload_weeks} deload week."
        )

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "accumulation_weeks": self.accumulation_weeks,
            "intensification_weeks": self.intensification_weeks,
            "deload_weeks": self.deload_weeks,
        }


PeriodizationModel = Union[Linear, Undulating4Week]


def select_periodization(profile: UserProfile) -> PeriodizationModel:
    """Total function of training age: no third branch."""
    if profile.experience_months() < LINEAR_EXPERIENCE_THRESHOLD_MONTHS:
        return Linear()
    return Undulating4Week()


def periodization_from_dict(data: dict) -> PeriodizationModel:
    """Rebuild the stored model of a program."""
    if data.get("kind") == "linear":
        return Linear(weeks=int(data.get("weeks", LINEAR_BLOCK_WEEKS)))
    return Undulating4Week(
        accumulation_weeks=int(data.get("accumulation_weeks", UNDULATING_ACCUMULATION_WEEKS)),
        intensification_weeks=int(data.get("intensification_weeks", UNDULATING_INTENSIFICATION_WEEKS)),
        deload_weeks=int(data.get("deload_weeks", UNDULATING_DELOAD_WEEKS)),
    )


def is_block_start(model: PeriodizationModel, week_number: int) -> bool:
    """True for week 1 of every block (week 1, 5, 9, ... for 4-week blocks)."""
    return (week_number - 1) % model.block_weeks == 0


def block_start_week(model: PeriodizationModel, week_number: int) -> int:
    """First program week of the block containing `week_number`."""
    return week_number - (week_number - 1) % model.block_weeks
