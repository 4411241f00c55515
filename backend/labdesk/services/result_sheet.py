"""
Apply the range classifier to every parameter of a test template.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ..errors import MissingParametersError
from .range_classifier import Classification, RangeStatus, classify

logger = logging.getLogger(__name__)


@dataclass
class TemplateParameter:
    name: str
    display_name: str | None = None
    unit: str | None = None
    reference_range: str | None = None
    required: bool = False
    order: int = 0

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass
class ParameterResult:
    name: str
    value: str
    unit: str | None
    reference_range: str | None
    classification: Classification


@dataclass
class ResultSheet:
    parameters: list[ParameterResult] = field(default_factory=list)
    overall_interpretation: RangeStatus = RangeStatus.NORMAL

    @property
    def has_abnormal_values(self) -> bool:
        return any(p.classification.status is RangeStatus.ABNORMAL for p in self.parameters)

    @property
    def has_critical_values(self) -> bool:
        return any(p.classification.status is RangeStatus.CRITICAL for p in self.parameters)


def overall_interpretation(statuses: Iterable[RangeStatus]) -> RangeStatus:
    """Worst status wins: any critical, else any abnormal, else normal."""
    seen = set(statuses)
    if RangeStatus.CRITICAL in seen:
        return RangeStatus.CRITICAL
    if RangeStatus.ABNORMAL in seen:
        return RangeStatus.ABNORMAL
    return RangeStatus.NORMAL


def evaluate_result_sheet(
    parameters: Iterable[TemplateParameter],
    values: Mapping[str, str | float | None],
) -> ResultSheet:
    """Classify each template parameter's entered value.

    Raises MissingParametersError when a required parameter has no value.
    """
    ordered = sorted(parameters, key=lambda p: p.order)

    def _entered(p: TemplateParameter) -> str:
        raw = values.get(p.name)
        return "" if raw is None else str(raw).strip()

    missing = [p.label for p in ordered if p.required and not _entered(p)]
    if missing:
        raise MissingParametersError(missing)

    results: list[ParameterResult] = []
    for p in ordered:
        entered = _entered(p)
        results.append(
            ParameterResult(
                name=p.name,
                value=entered,
                unit=p.unit,
                reference_range=p.reference_range,
                classification=classify(entered, p.reference_range),
            )
        )

    sheet = ResultSheet(
        parameters=results,
        overall_interpretation=overall_interpretation(r.classification.status for r in results),
    )
    logger.info(
        f"Evaluated {len(results)} parameters: overall={sheet.overall_interpretation.value}"
    )
    return sheet
