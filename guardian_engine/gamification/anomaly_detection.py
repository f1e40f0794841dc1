"""
Anomaly Detector

Heuristic flags over a user's recent reports, for admin review only.

Flags:
- high_energy_low_output: well-grown user whose latest output collapsed
  against their own earlier average (self-relative, so naturally
  low-volume teams are not penalized)
- frequent_modification: too many edits in the window
- inconsistent_growth: a metric jumps 10x or more from one report to the next
- suspicious_pattern: copy-pasted metrics repeated more than once

Flags are advisory. Nothing here blocks a report or changes state, and
false positives are expected.
"""

from typing import List, Optional, Sequence
import logging

from pydantic import BaseModel, ConfigDict, Field

from guardian_engine.models.report import AnomalyFlags, Report

logger = logging.getLogger(__name__)


class AnomalyThresholds(BaseModel):
    """Tuning constants of the heuristics"""
    model_config = ConfigDict(frozen=True)

    min_stage: int = Field(default=3, ge=0)
    min_energy: int = Field(default=300, ge=0)
    min_reports: int = Field(default=6, ge=2)
    recent_window: int = Field(default=3, ge=1)
    low_output_ratio: float = Field(default=0.25, gt=0, lt=1)
    max_modifications: int = Field(default=5, ge=0)
    growth_multiple: float = Field(default=10.0, gt=1)
    max_duplicates: int = Field(default=1, ge=0)


def _average_output(reports: Sequence[Report]) -> float:
    if not reports:
        return 0.0
    return sum(r.metrics.output_score() for r in reports) / len(reports)


def check_high_energy_low_output(
    reports: Sequence[Report],
    current_energy: int,
    current_stage: int,
    thresholds: AnomalyThresholds
) -> bool:
    if current_stage < thresholds.min_stage or current_energy <= thresholds.min_energy:
        return False
    if len(reports) < thresholds.min_reports:
        return False

    recent = reports[-thresholds.recent_window:]
    earlier = reports[:-thresholds.recent_window]
    baseline = _average_output(earlier)
    if baseline <= 0:
        return False

    return _average_output(recent) < baseline * thresholds.low_output_ratio


def check_frequent_modification(reports: Sequence[Report], thresholds: AnomalyThresholds) -> bool:
    return sum(r.modification_count for r in reports) > thresholds.max_modifications


def check_inconsistent_growth(reports: Sequence[Report], thresholds: AnomalyThresholds) -> bool:
    for previous, current in zip(reports, reports[1:]):
        before = previous.metrics.as_dict()
        for metric, value in current.metrics.as_dict().items():
            base = before.get(metric, 0)
            if base > 0 and value >= base * thresholds.growth_multiple:
                logger.debug(f"{metric} jumped {base} -> {value} on {current.date}")
                return True
    return False


def check_suspicious_pattern(reports: Sequence[Report], thresholds: AnomalyThresholds) -> bool:
    seen: List[dict] = []
    duplicates = 0
    for report in reports:
        if report.metrics.is_empty():
            continue
        values = report.metrics.as_dict()
        if values in seen:
            duplicates += 1
        else:
            seen.append(values)
    return duplicates > thresholds.max_duplicates


def detect_anomalies(
    recent_reports: Sequence[Report],
    current_energy: int,
    current_stage: int,
    *,
    thresholds: Optional[AnomalyThresholds] = None
) -> AnomalyFlags:
    """
    Compute advisory anomaly flags for a window of reports

    Args:
        recent_reports: Reports in the review window, any order
        current_energy: User's spendable energy
        current_stage: Stage of the user's active guardian
        thresholds: Heuristic tuning (defaults if omitted)

    Returns:
        AnomalyFlags (all False for an empty window)
    """
    thresholds = thresholds or AnomalyThresholds()
    reports = sorted(recent_reports, key=lambda r: r.date)

    flags = AnomalyFlags(
        high_energy_low_output=check_high_energy_low_output(reports, current_energy, current_stage, thresholds),
        frequent_modification=check_frequent_modification(reports, thresholds),
        inconsistent_growth=check_inconsistent_growth(reports, thresholds),
        suspicious_pattern=check_suspicious_pattern(reports, thresholds),
    )

    if flags.any_flagged:
        logger.info(f"Anomaly flags raised over {len(reports)} reports: {flags.flagged_names()}")
    return flags
