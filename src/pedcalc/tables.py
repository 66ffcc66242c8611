"""
Reference table store.

Reference tables are loaded once into immutable ReferenceTable objects and handed
to the engine through a ReferenceTableStore. Nothing in this module keeps
process-wide mutable state; ``default_store`` only memoizes the store built from
the bundled CSVs.

Two row-matching strategies are available:

- exact: the requested age and each row's age key are rounded half-up to whole
  months and the first equal row wins. Gestational tables match the "weeks+days"
  key literally. No match means no reference data.
- interpolate: L, M, S (and any percentile columns) are linearly interpolated
  between the rows bracketing the requested age. Ages outside the tabulated
  range yield no row.
"""

import bisect
import functools
import logging
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict

from .age import parse_gestational_key
from .config import (
    AGE_COLUMN,
    GESTATIONAL_AGE_COLUMN,
    GESTATIONAL_PERCENTILE_COLUMNS,
    GESTATIONAL_SEX_COLUMN,
    LMS_COLUMNS,
    PERCENTILE_COLUMNS,
    SEX_CODES,
    SEX_COLUMN,
    TABLE_CATALOG,
    EngineConfig,
    TableSpec,
)
from .errors import DataIntegrityError, NoReferenceDataError
from .rounding import round_half_up

logger = logging.getLogger(__name__)

AgeKey = Union[float, str]

_SEX_ALIASES = {
    "male": 1,
    "m": 1,
    "boy": 1,
    "1": 1,
    "female": 2,
    "f": 2,
    "girl": 2,
    "2": 2,
}


def sex_code(sex: Union[str, int]) -> int:
    """
    Normalize a sex value to the table encoding (1 = male, 2 = female).

    Raises:
        ValueError: For anything other than male/female (or 1/2, M/F)
    """
    if isinstance(sex, bool):
        raise ValueError("Sex values must be 'male' or 'female'")
    if isinstance(sex, (int, np.integer)) and int(sex) in SEX_CODES.values():
        return int(sex)
    if isinstance(sex, str) and sex.strip().lower() in _SEX_ALIASES:
        return _SEX_ALIASES[sex.strip().lower()]
    raise ValueError(f"Sex values must be 'male' or 'female' (got {sex!r})")


def sex_label(code: int) -> str:
    return "male" if code == 1 else "female"


class ReferenceRow(BaseModel):
    """
    One row of a reference table.

    Attributes:
        sex (int): 1 = male, 2 = female
        age_key (float | str): Age in months, or "weeks+days" for gestational tables
        L, M, S (Optional[float]): LMS parameters, absent for percentile-only tables
        percentiles (Tuple[Tuple[float, float], ...]): Direct percentile columns as
            (percentile, value) pairs sorted by percentile
    """

    model_config = ConfigDict(frozen=True)

    sex: int
    age_key: AgeKey
    L: Optional[float] = None
    M: Optional[float] = None
    S: Optional[float] = None
    percentiles: Tuple[Tuple[float, float], ...] = ()

    @property
    def has_lms(self) -> bool:
        return self.L is not None and self.M is not None and self.S is not None

    @property
    def percentile_columns(self) -> Dict[float, float]:
        return dict(self.percentiles)

    def column(self, percentile: float) -> Optional[float]:
        return self.percentile_columns.get(float(percentile))


class ReferenceTable:
    """
    Immutable, sex-partitioned collection of reference rows.

    Args:
        name: Catalog name, e.g. "cdc_bmi"
        rows: Rows in source order
        spec: Standard, measure and age unit; looked up in TABLE_CATALOG by name
            when omitted
    """

    def __init__(
        self,
        name: str,
        rows: Iterable[ReferenceRow],
        spec: Optional[TableSpec] = None,
    ):
        self.name = name
        self.spec = spec or TABLE_CATALOG.get(name) or TableSpec("custom", name, "months")
        self.rows: Tuple[ReferenceRow, ...] = tuple(rows)
        by_sex: Dict[int, List[ReferenceRow]] = {}
        for row in self.rows:
            by_sex.setdefault(row.sex, []).append(row)
        self._by_sex = MappingProxyType({k: tuple(v) for k, v in by_sex.items()})

    @property
    def is_gestational(self) -> bool:
        return self.spec.age_unit == "gestational"

    def rows_for(self, sex: Union[str, int]) -> Tuple[ReferenceRow, ...]:
        return self._by_sex.get(sex_code(sex), ())

    def find_exact(self, sex: Union[str, int], age_key: AgeKey) -> Optional[ReferenceRow]:
        rows = self.rows_for(sex)
        if self.is_gestational:
            for row in rows:
                if row.age_key == age_key:
                    return row
            return None

        target = round_half_up(float(age_key))
        for row in rows:
            if round_half_up(float(row.age_key)) == target:
                return row
        return None

    def interpolate(self, sex: Union[str, int], age: float) -> Optional[ReferenceRow]:
        """Linear interpolation in age; gestational tables have none."""
        if self.is_gestational:
            return None
        rows = sorted(self.rows_for(sex), key=lambda r: float(r.age_key))
        if not rows:
            return None
        ages = [float(r.age_key) for r in rows]
        age = float(age)
        if age < ages[0] or age > ages[-1]:
            return None

        idx = bisect.bisect_left(ages, age)
        if ages[idx] == age:
            return rows[idx]
        lower, upper = rows[idx - 1], rows[idx]
        factor = (age - ages[idx - 1]) / (ages[idx] - ages[idx - 1])

        def lerp(a: Optional[float], b: Optional[float]) -> Optional[float]:
            if a is None or b is None:
                return None
            return a + (b - a) * factor

        upper_columns = upper.percentile_columns
        columns = tuple(
            (p, lerp(v, upper_columns[p]))
            for p, v in lower.percentiles
            if p in upper_columns
        )
        return ReferenceRow(
            sex=lower.sex,
            age_key=age,
            L=lerp(lower.L, upper.L),
            M=lerp(lower.M, upper.M),
            S=lerp(lower.S, upper.S),
            percentiles=columns,
        )

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"ReferenceTable(name={self.name!r}, rows={len(self.rows)})"


class ReferenceTableStore:
    """
    Read-only set of reference tables, injected into the engine.

    Args:
        tables: Tables to expose; names must be unique
    """

    def __init__(self, tables: Iterable[ReferenceTable]):
        mapping: Dict[str, ReferenceTable] = {}
        for table in tables:
            if table.name in mapping:
                raise ValueError(f"Duplicate reference table: {table.name}")
            mapping[table.name] = table
        self._tables: Mapping[str, ReferenceTable] = MappingProxyType(mapping)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def names(self) -> List[str]:
        return sorted(self._tables)

    def table(self, name: str) -> ReferenceTable:
        """
        Raises:
            NoReferenceDataError: If the table is not loaded
        """
        try:
            return self._tables[name]
        except KeyError:
            raise NoReferenceDataError(f"Reference table '{name}' is not available") from None

    def find_row(
        self, table: Union[str, ReferenceTable], sex: Union[str, int], age_key: AgeKey
    ) -> Optional[ReferenceRow]:
        """Exact lookup; returns None rather than a nearest-neighbour guess."""
        return self._resolve(table).find_exact(sex, age_key)

    def interpolate_row(
        self, table: Union[str, ReferenceTable], sex: Union[str, int], age: float
    ) -> Optional[ReferenceRow]:
        return self._resolve(table).interpolate(sex, age)

    def match_row(
        self,
        table: Union[str, ReferenceTable],
        sex: Union[str, int],
        age_key: AgeKey,
        strategy: str = "exact",
    ) -> Optional[ReferenceRow]:
        """
        Match a row under a strategy. Gestational tables always match their
        "weeks+days" key exactly.
        """
        resolved = self._resolve(table)
        if strategy == "interpolate" and not resolved.is_gestational:
            return resolved.interpolate(sex, float(age_key))
        return resolved.find_exact(sex, age_key)

    def _resolve(self, table: Union[str, ReferenceTable]) -> ReferenceTable:
        return table if isinstance(table, ReferenceTable) else self.table(table)


def _required_columns(spec: TableSpec) -> List[str]:
    if spec.age_unit == "gestational":
        return [GESTATIONAL_SEX_COLUMN, GESTATIONAL_AGE_COLUMN]
    return [SEX_COLUMN, AGE_COLUMN]


def table_from_frame(name: str, frame: pd.DataFrame, spec: Optional[TableSpec] = None) -> ReferenceTable:
    """
    Build a ReferenceTable from a DataFrame in the bundled CSV schema.

    Rows whose sex cell is not numeric (repeated header lines in CDC downloads)
    are dropped.

    Raises:
        ValueError: If required columns are missing or the table has neither LMS
            nor percentile columns
    """
    spec = spec or TABLE_CATALOG.get(name) or TableSpec("custom", name, "months")
    missing = [col for col in _required_columns(spec) if col not in frame.columns]
    if missing:
        raise ValueError(f"Reference table '{name}' is missing columns: {missing}")

    if spec.age_unit == "gestational":
        sex_col, age_col = GESTATIONAL_SEX_COLUMN, GESTATIONAL_AGE_COLUMN
        percentile_map = GESTATIONAL_PERCENTILE_COLUMNS
    else:
        sex_col, age_col = SEX_COLUMN, AGE_COLUMN
        percentile_map = PERCENTILE_COLUMNS

    has_lms = all(col in frame.columns for col in LMS_COLUMNS)
    percentile_cols = [col for col in percentile_map if col in frame.columns]
    if not has_lms and len(percentile_cols) < 2:
        raise ValueError(
            f"Reference table '{name}' needs L, M, S or at least two percentile columns"
        )

    frame = frame.copy()
    frame[sex_col] = pd.to_numeric(frame[sex_col], errors="coerce")
    frame = frame[frame[sex_col].isin([1, 2])]
    numeric_cols = (list(LMS_COLUMNS) if has_lms else []) + percentile_cols
    if spec.age_unit != "gestational":
        numeric_cols.append(age_col)
    for col in numeric_cols:
        frame[col] = pd.to_numeric(frame[col], errors="coerce")

    rows = []
    for record in frame.to_dict("records"):
        age_key: AgeKey
        if spec.age_unit == "gestational":
            age_key = str(record[age_col]).strip()
        else:
            age_key = float(record[age_col])
        percentiles = tuple(
            (percentile_map[col], float(record[col]))
            for col in percentile_cols
            if pd.notna(record[col])
        )
        rows.append(
            ReferenceRow(
                sex=int(record[sex_col]),
                age_key=age_key,
                L=float(record["L"]) if has_lms else None,
                M=float(record["M"]) if has_lms else None,
                S=float(record["S"]) if has_lms else None,
                percentiles=percentiles,
            )
        )
    return ReferenceTable(name, rows, spec)


def validate_table_integrity(table: ReferenceTable) -> List[str]:
    """
    Check a loaded table for problems that would break calculations.

    Returns:
        Descriptions of the problems found; empty when the table is sound
    """
    problems = []
    if not table.rows:
        problems.append(f"{table.name}: table is empty")

    seen = set()
    for row in table.rows:
        key = (row.sex, row.age_key)
        if key in seen:
            problems.append(f"{table.name}: duplicate row for sex={row.sex}, age={row.age_key}")
        seen.add(key)
        if row.has_lms:
            lms = (row.L, row.M, row.S)
            if not all(np.isfinite(v) for v in lms):
                problems.append(f"{table.name}: non-finite LMS at sex={row.sex}, age={row.age_key}")
            elif row.M <= 0 or row.S <= 0:
                problems.append(f"{table.name}: non-positive M or S at sex={row.sex}, age={row.age_key}")
        if table.is_gestational:
            try:
                parse_gestational_key(row.age_key)
            except ValueError:
                problems.append(f"{table.name}: malformed gestational age {row.age_key!r}")
        elif isinstance(row.age_key, float) and row.age_key < 0:
            problems.append(f"{table.name}: negative age {row.age_key}")
    return problems


def _bundled_csv(name: str):
    resource = resources.files("pedcalc.data").joinpath(f"{name}.csv")
    return resource if resource.is_file() else None


def load_table(name: str, data_dir: Optional[Path] = None) -> Optional[ReferenceTable]:
    """
    Load one catalog table, preferring ``data_dir`` over the bundled CSVs.

    Returns:
        The table, or None when no CSV exists for it

    Raises:
        ValueError: If the CSV cannot be parsed into the expected schema
    """
    source = None
    if data_dir is not None and (Path(data_dir) / f"{name}.csv").is_file():
        source = Path(data_dir) / f"{name}.csv"
    else:
        source = _bundled_csv(name)
    if source is None:
        logger.debug(f"No CSV found for reference table {name}")
        return None

    spec = TABLE_CATALOG[name]
    dtype = {GESTATIONAL_AGE_COLUMN: str} if spec.age_unit == "gestational" else None
    try:
        with source.open("r", encoding="utf-8") as f:
            frame = pd.read_csv(f, dtype=dtype)
    except (OSError, pd.errors.ParserError) as e:
        raise ValueError(f"Failed to read reference table {name} from {source}: {e}") from e
    return table_from_frame(name, frame)


def load_reference_store(config: Optional[EngineConfig] = None) -> ReferenceTableStore:
    """
    Load every catalog table that has a CSV available.

    Integrity problems are logged; with ``config.strict_integrity`` they raise.

    Raises:
        DataIntegrityError: In strict mode, for any malformed table
    """
    config = config or EngineConfig()
    tables = []
    for name in TABLE_CATALOG:
        table = load_table(name, config.data_dir)
        if table is None:
            continue
        problems = validate_table_integrity(table)
        for problem in problems:
            logger.warning(f"Reference data integrity: {problem}")
        if problems and config.strict_integrity:
            raise DataIntegrityError(
                f"Reference table {name} failed integrity checks: {'; '.join(problems)}"
            )
        tables.append(table)
    logger.debug(f"Loaded reference tables: {[t.name for t in tables]}")
    return ReferenceTableStore(tables)


@functools.lru_cache(maxsize=1)
def default_store() -> ReferenceTableStore:
    """Store built once from the bundled tables and PEDCALC_* settings."""
    return load_reference_store(EngineConfig.from_env())
