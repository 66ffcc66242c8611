"""
Chart series for growth-chart rendering.

Percentile curves are sampled on each standard's fixed age grid: monthly for
the month-keyed standards and weekly ("w+0") for INTERGROWTH. A curve point
reads the tabulated percentile column when the row has one and otherwise
inverts the LMS transform at the percentile's Z-score. Rows with only
percentile columns interpolate between the bracketing columns. Ages without a
matching row are left out of the series rather than filled with a guess.

Rendering itself is left to the caller.
"""

import datetime
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict

from . import lms
from .age import age_in_years, resolve_age_months, resolve_gestational_key, round_to_half_month
from .config import AGE_DOMAINS, DEFAULT_CHART_PERCENTILES
from .engine import PediatricCalculator
from .errors import DomainRangeError, NoReferenceDataError
from .percentile import (
    percentile_from_columns,
    percentile_from_z,
    value_from_columns,
    z_from_percentile,
)
from .rounding import round_half_up
from .selector import TableSelection, check_domain, normalize_standard
from .tables import ReferenceRow
from .units import calculate_bmi, validate_measurement

logger = logging.getLogger(__name__)

AgeKey = Union[float, str]

# Infant overlay ages go through half-month rounding, which leaves the whole
# months from resolve_age_months unchanged
HALF_MONTH_STANDARDS = ("cdc_infant", "who")


@dataclass(frozen=True)
class ChartSeries:
    """One percentile curve as (age key, measurement) points in age order."""

    percentile: float
    points: Tuple[Tuple[AgeKey, float], ...]

    @property
    def ages(self) -> List[AgeKey]:
        return [age for age, _ in self.points]

    @property
    def values(self) -> List[float]:
        return [value for _, value in self.points]


class ChartMeasurement(BaseModel):
    """A dated patient measurement to overlay on a chart."""

    model_config = ConfigDict(frozen=True)

    date: datetime.date
    value: float
    gestational_weeks: Optional[int] = None
    gestational_days: Optional[int] = None


class OverlayPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime.date
    age_key: Optional[AgeKey]
    value: float
    percentile: Optional[float] = None
    z_score: Optional[float] = None
    warning: Optional[str] = None


class ProgressionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime.date
    age_in_years: float
    weight: float
    height: float
    bmi: float


def age_grid(standard: str) -> List[AgeKey]:
    """Fixed sampling grid of a standard's chart."""
    standard = normalize_standard(standard)
    domain = AGE_DOMAINS[standard]
    steps = range(int(domain.start), int(domain.stop) + 1, int(domain.step))
    if domain.unit == "weeks":
        return [f"{week}+0" for week in steps]
    return [float(age) for age in steps]


class ChartSeriesBuilder:
    """
    Builds percentile curves and patient overlays from a calculator's tables.

    Args:
        calculator: Engine whose store and row-matching settings are used
    """

    def __init__(self, calculator: Optional[PediatricCalculator] = None):
        self.calculator = calculator or PediatricCalculator()

    @property
    def selector(self):
        return self.calculator.selector

    def build_series(
        self,
        kind: str,
        standard: str,
        sex: Union[str, int],
        percentiles: Sequence[float] = DEFAULT_CHART_PERCENTILES,
    ) -> List[ChartSeries]:
        """
        Percentile curves over the standard's age grid.

        Args:
            kind: Calculator kind ("weight", "height", "bmi", "head_circumference")
            standard: "cdc", "cdc_infant", "who" or "intergrowth"
            sex: "male" or "female"
            percentiles: Curves to draw; all must lie in (0, 100)

        Returns:
            One ChartSeries per requested percentile, in request order

        Raises:
            NoReferenceDataError: If the standard has no table for this kind and sex
            ValueError: For unknown kinds, standards, sexes or percentiles
            DataIntegrityError: If a matched row has invalid LMS parameters
        """
        selection = self.selector.select_table(kind, standard, sex)
        matched = self._matched_rows(selection)
        if not matched:
            logger.warning(f"No rows of {selection.table.name} fall on the chart grid")

        series = []
        for p in percentiles:
            z = z_from_percentile(p)
            values: List[Optional[float]] = [
                row.column(p) if row.has_lms else value_from_columns(p, row.percentile_columns)
                for _, row in matched
            ]
            derive = [i for i, v in enumerate(values) if v is None and matched[i][1].has_lms]
            if derive:
                rows = [matched[i][1] for i in derive]
                derived = lms.values_from_z(
                    z,
                    np.array([row.L for row in rows], dtype=np.float64),
                    np.array([row.M for row in rows], dtype=np.float64),
                    np.array([row.S for row in rows], dtype=np.float64),
                )
                for i, value in zip(derive, derived):
                    values[i] = float(value)

            points = tuple(
                (age, value)
                for (age, _), value in zip(matched, values)
                if value is not None and math.isfinite(value)
            )
            if matched and not points:
                logger.warning(
                    f"No {p}th percentile values in {selection.table.name}; the series is empty"
                )
            series.append(ChartSeries(percentile=float(p), points=points))
        logger.debug(
            f"Built {len(series)} series for {selection.table.name} over {len(matched)} ages"
        )
        return series

    def _matched_rows(self, selection: TableSelection):
        matched = []
        for age in age_grid(selection.standard):
            row = self.calculator.store.match_row(
                selection.table, selection.sex, age, selection.matching
            )
            if row is not None:
                matched.append((age, row))
        return matched

    def overlay(
        self,
        kind: str,
        standard: str,
        sex: Union[str, int],
        date_of_birth: datetime.date,
        measurements: Sequence[Union[ChartMeasurement, dict]],
    ) -> List[OverlayPoint]:
        """
        Place dated patient measurements on a chart.

        Values pass through unchanged. Each point carries its resolved age key
        and, where reference data covers it, its Z-score and percentile. Points
        the chart cannot place carry a warning instead.

        Raises:
            ValueError: For unknown kinds, standards or sexes, implausible
                values, or INTERGROWTH measurements without gestational age
            DataIntegrityError: If a matched row has invalid LMS parameters
        """
        standard = normalize_standard(standard)
        items = [m if isinstance(m, ChartMeasurement) else ChartMeasurement(**m) for m in measurements]
        try:
            selection = self.selector.select_table(kind, standard, sex)
        except NoReferenceDataError as e:
            logger.info(f"No overlay for {kind} on {standard}: {e}")
            return [
                OverlayPoint(date=m.date, age_key=None, value=m.value, warning=str(e))
                for m in items
            ]

        points: List[OverlayPoint] = []
        pending: List[Tuple[int, float, ReferenceRow]] = []
        for m in items:
            validate_measurement(m.value, selection.kind)
            try:
                age_key = self._overlay_age(selection, date_of_birth, m)
            except DomainRangeError as e:
                points.append(OverlayPoint(date=m.date, age_key=None, value=m.value, warning=str(e)))
                continue
            try:
                row = self.selector.find_row(selection, age_key)
            except NoReferenceDataError as e:
                points.append(
                    OverlayPoint(date=m.date, age_key=age_key, value=m.value, warning=str(e))
                )
                continue

            if row.has_lms:
                pending.append((len(points), m.value, row))
                points.append(OverlayPoint(date=m.date, age_key=age_key, value=m.value))
            else:
                points.append(
                    OverlayPoint(
                        date=m.date,
                        age_key=age_key,
                        value=m.value,
                        percentile=percentile_from_columns(m.value, row.percentile_columns),
                    )
                )

        if pending:
            rows = [row for _, _, row in pending]
            scores = lms.zscores(
                np.array([value for _, value, _ in pending], dtype=np.float64),
                np.array([row.L for row in rows], dtype=np.float64),
                np.array([row.M for row in rows], dtype=np.float64),
                np.array([row.S for row in rows], dtype=np.float64),
            )
            for (i, _, _), z in zip(pending, scores):
                if math.isfinite(z):
                    points[i] = points[i].model_copy(
                        update={"z_score": float(z), "percentile": percentile_from_z(float(z))}
                    )
        logger.debug(f"Placed {len(pending)} LMS points of {len(points)} on {selection.table.name}")
        return points

    @staticmethod
    def _overlay_age(
        selection: TableSelection, date_of_birth: datetime.date, m: ChartMeasurement
    ) -> AgeKey:
        if selection.is_gestational:
            if m.gestational_weeks is None or m.gestational_days is None:
                raise ValueError(
                    "Gestational weeks and days are required for INTERGROWTH overlays"
                )
            return resolve_gestational_key(m.gestational_weeks, m.gestational_days)
        months = float(resolve_age_months(date_of_birth, m.date))
        check_domain(selection.standard, months)
        if selection.standard in HALF_MONTH_STANDARDS:
            return round_to_half_month(months)
        return months


def progression(
    date_of_birth: datetime.date, measurements: Sequence[dict]
) -> List[ProgressionEntry]:
    """
    Tabulate weight, height and BMI over time.

    Args:
        date_of_birth: Patient's birth date
        measurements: Mappings with "date", "weight" (kg) and "height" (cm);
            entries missing either measurement are skipped

    Returns:
        Entries in date order with age in years and BMI to two decimals
    """
    entries = []
    for m in sorted(measurements, key=lambda item: item["date"]):
        weight, height = m.get("weight"), m.get("height")
        if weight is None or height is None:
            continue
        months = resolve_age_months(date_of_birth, m["date"])
        entries.append(
            ProgressionEntry(
                date=m["date"],
                age_in_years=round_half_up(age_in_years(months), 2),
                weight=weight,
                height=height,
                bmi=round_half_up(calculate_bmi(weight, height), 2),
            )
        )
    return entries
