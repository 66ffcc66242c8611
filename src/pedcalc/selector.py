"""
Standard selection: which reference table and row-matching rule apply to a
calculator kind, growth standard and sex.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple, Union

from .config import (
    AGE_DOMAINS,
    CALCULATOR_KINDS,
    ROW_MATCHING_STRATEGIES,
    STANDARDS,
    TABLE_CATALOG,
    AgeDomain,
)
from .errors import DomainRangeError, NoReferenceDataError
from .tables import ReferenceRow, ReferenceTable, ReferenceTableStore, sex_code, sex_label

logger = logging.getLogger(__name__)

KIND_ALIASES = {
    "weight": "weight",
    "height": "height",
    "length": "height",
    "stature": "height",
    "bmi": "bmi",
    "head_circumference": "head_circumference",
    "head": "head_circumference",
    "headcircumference": "head_circumference",
    "hc": "head_circumference",
}

TABLE_ROUTES: Dict[Tuple[str, str], str] = {
    (spec.measure, spec.standard): name for name, spec in TABLE_CATALOG.items()
}

# Age (months) from which the CDC 2-20 year charts replace the WHO/infant charts
CDC_CHILD_START_MONTHS = 24


def normalize_kind(kind: str) -> str:
    """
    Raises:
        ValueError: For unknown calculator kinds
    """
    key = str(kind).strip().lower().replace("-", "_").replace(" ", "_")
    if key not in KIND_ALIASES:
        raise ValueError(
            f"Unknown calculator kind {kind!r}; expected one of {CALCULATOR_KINDS}"
        )
    return KIND_ALIASES[key]


def normalize_standard(standard: str) -> str:
    """
    Raises:
        ValueError: For unknown standards
    """
    key = str(standard).strip().lower().replace("-", "_")
    if key not in STANDARDS:
        raise ValueError(f"Unknown standard {standard!r}; expected one of {STANDARDS}")
    return key


@dataclass(frozen=True)
class TableSelection:
    """Outcome of standard selection for one calculation."""

    kind: str
    standard: str
    sex: int
    table: ReferenceTable
    rows: Tuple[ReferenceRow, ...]
    matching: str
    domain: AgeDomain

    @property
    def is_gestational(self) -> bool:
        return self.table.is_gestational


class StandardSelector:
    """
    Maps (calculator kind, standard, sex) to a preloaded reference table.

    Args:
        store: Reference tables to select from
        row_matching: "exact" or "interpolate" for month-keyed tables; gestational
            tables always match exactly
    """

    def __init__(self, store: ReferenceTableStore, row_matching: str = "exact"):
        if row_matching not in ROW_MATCHING_STRATEGIES:
            raise ValueError(
                f"row_matching must be one of {ROW_MATCHING_STRATEGIES}, got {row_matching!r}"
            )
        self.store = store
        self.row_matching = row_matching

    def table_name(self, kind: str, standard: str) -> str:
        """
        Raises:
            NoReferenceDataError: If the standard does not cover this kind
                (e.g. INTERGROWTH + BMI)
        """
        kind, standard = normalize_kind(kind), normalize_standard(standard)
        try:
            return TABLE_ROUTES[(kind, standard)]
        except KeyError:
            raise NoReferenceDataError(
                f"The {standard} standard has no {kind.replace('_', ' ')} reference data"
            ) from None

    def select_table(
        self, kind: str, standard: str, sex: Union[str, int]
    ) -> TableSelection:
        """
        Pick the table and sex subset for a calculation.

        Raises:
            NoReferenceDataError: If the combination is unsupported, the table is
                not loaded, or it has no rows for this sex
            ValueError: For unknown kinds, standards or sexes
        """
        name = self.table_name(kind, standard)
        code = sex_code(sex)
        table = self.store.table(name)
        rows = table.rows_for(code)
        if not rows:
            raise NoReferenceDataError(
                f"No reference data for sex '{sex_label(code)}' in table {name}"
            )
        matching = "exact" if table.is_gestational else self.row_matching
        logger.debug(f"Selected table {name} ({len(rows)} rows, matching={matching})")
        return TableSelection(
            kind=normalize_kind(kind),
            standard=normalize_standard(standard),
            sex=code,
            table=table,
            rows=rows,
            matching=matching,
            domain=AGE_DOMAINS[normalize_standard(standard)],
        )

    def find_row(self, selection: TableSelection, age_key: Union[float, str]) -> ReferenceRow:
        """
        Match the row for an age key under the selection's strategy.

        Raises:
            NoReferenceDataError: If no row matches
        """
        row = self.store.match_row(
            selection.table, selection.sex, age_key, selection.matching
        )
        if row is None:
            raise NoReferenceDataError(
                f"No reference data for age {age_key} and sex "
                f"'{sex_label(selection.sex)}' in {selection.table.name}"
            )
        return row


def check_domain(standard: str, age: float) -> None:
    """
    Raises:
        DomainRangeError: If ``age`` is outside the fixed domain of ``standard``
    """
    domain = AGE_DOMAINS[normalize_standard(standard)]
    if age < domain.start or age > domain.stop:
        raise DomainRangeError(
            f"Age {age} {domain.unit} is outside the {standard} range "
            f"({domain.start}-{domain.stop} {domain.unit})"
        )


def standard_for_age(age_months: float) -> str:
    """WHO below 24 months, CDC from 24 months."""
    return "who" if age_months < CDC_CHILD_START_MONTHS else "cdc"
