"""Report input models and derived anomaly flags"""
import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from guardian_engine.exceptions import ValidationError as EngineValidationError
from guardian_engine.utils.datetime_helpers import parse_report_date


class ReportMetrics(BaseModel):
    """
    KPI values of one daily report

    The named fields cover the video and X teams. Teams with their own
    KPI fields pass them as extra keys; every value must be a non-negative
    number.
    """
    model_config = ConfigDict(extra="allow")

    post_count: int = Field(default=0, ge=0)
    views: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)
    likes: int = Field(default=0, ge=0)
    replies: int = Field(default=0, ge=0)
    reposts: int = Field(default=0, ge=0)
    profile_visits: int = Field(default=0, ge=0)
    link_clicks: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_extra_metrics(self) -> "ReportMetrics":
        for key, value in (self.model_extra or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"metric {key!r} must be a number")
            if value < 0:
                raise ValueError(f"metric {key!r} must not be negative")
        return self

    def as_dict(self) -> dict[str, float]:
        """All metric values, named and team-specific"""
        return self.model_dump()

    def is_empty(self) -> bool:
        return all(value == 0 for value in self.as_dict().values())

    def output_score(self) -> float:
        """Sum of every reported output value"""
        return float(sum(self.as_dict().values()))


def _parse_date(value: Any) -> dt.date:
    try:
        return parse_report_date(value)
    except EngineValidationError as e:
        # Surface as a pydantic field error
        raise ValueError(e.message)


class ReportEvent(BaseModel):
    """
    A report submission entering the engine

    is_modification marks an edit of an earlier report. It is echoed on the
    outcome and counted; anomaly review reads edit counts from
    Report.modification_count.
    """
    user_id: str = Field(..., min_length=1)
    date: dt.date
    report_metrics: ReportMetrics = Field(default_factory=ReportMetrics)
    is_modification: bool = False

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> dt.date:
        return _parse_date(v)


class Report(BaseModel):
    """A stored report as seen by the anomaly detector"""
    date: dt.date
    metrics: ReportMetrics = Field(default_factory=ReportMetrics)
    modification_count: int = Field(default=0, ge=0)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> dt.date:
        return _parse_date(v)


class AnomalyFlags(BaseModel):
    """Advisory flags for human review; never stored as ground truth"""
    high_energy_low_output: bool = False
    frequent_modification: bool = False
    inconsistent_growth: bool = False
    suspicious_pattern: bool = False

    @property
    def any_flagged(self) -> bool:
        return any(self.model_dump().values())

    def flagged_names(self) -> list[str]:
        return [name for name, flagged in self.model_dump().items() if flagged]
