"""Achievement criteria as a tagged union keyed on ``type``.

Each variant knows which progress figure it compares against its
threshold. Criteria of an unknown ``type`` are rejected when parsed.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from volunteer_portal.achievements.progress import UserProgress
from volunteer_portal.errors import ValidationFailed


class _Criteria(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: float = Field(ge=0)
    timeframe: Optional[Literal["month", "year", "all_time"]] = None

    def progress_value(self, progress: UserProgress) -> float:
        raise NotImplementedError

    def is_met(self, progress: UserProgress) -> bool:
        return self.progress_value(progress) >= self.value


class ShiftsCompleted(_Criteria):
    type: Literal["shifts_completed"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.shifts_completed


class HoursVolunteered(_Criteria):
    type: Literal["hours_volunteered"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.hours_volunteered


class ConsecutiveMonths(_Criteria):
    type: Literal["consecutive_months"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.consecutive_months


class SpecificShiftType(_Criteria):
    type: Literal["specific_shift_type"]
    shift_type: str = Field(alias="shiftType")

    def progress_value(self, progress: UserProgress) -> float:
        return progress.shift_type_counts.get(self.shift_type, 0)


class YearsVolunteering(_Criteria):
    type: Literal["years_volunteering"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.years_volunteering


class CommunityImpact(_Criteria):
    type: Literal["community_impact"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.community_impact


class FriendsCount(_Criteria):
    type: Literal["friends_count"]

    def progress_value(self, progress: UserProgress) -> float:
        return progress.friends_count


AchievementCriteria = Annotated[
    Union[
        ShiftsCompleted,
        HoursVolunteered,
        ConsecutiveMonths,
        SpecificShiftType,
        YearsVolunteering,
        CommunityImpact,
        FriendsCount,
    ],
    Field(discriminator="type"),
]

_criteria_adapter: TypeAdapter[AchievementCriteria] = TypeAdapter(AchievementCriteria)


def parse_criteria(raw: Union[str, bytes, dict]) -> AchievementCriteria:
    """Parse stored or submitted criteria, raising ValidationFailed if malformed."""
    try:
        if isinstance(raw, (str, bytes)):
            return _criteria_adapter.validate_json(raw)
        return _criteria_adapter.validate_python(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "criteria"
        raise ValidationFailed(f"Invalid achievement criteria ({where}): {first['msg']}") from exc


def dump_criteria(criteria: AchievementCriteria) -> str:
    return criteria.model_dump_json(by_alias=True, exclude_none=True)
