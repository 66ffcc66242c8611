"""
Percentile/Z-score calculation engine.

Control flow for one measurement:

    age resolution -> standard selection -> row lookup -> LMS Z-score
    -> percentile -> interpretation label

A missing table, a missing row or an age outside the standard's domain is not an
error for the caller: the result comes back with null Z-score and percentile and
a warning. Malformed reference rows raise DataIntegrityError.
"""

import functools
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from . import lms
from .age import (
    resolve_age_hours,
    resolve_age_months,
    resolve_age_years,
    resolve_gestational_key,
)
from .classifiers import classify
from .classifiers.airway import ETTRecommendation
from .classifiers.bilirubin import (
    BilirubinAssessment,
    has_neurotoxicity_risk_factors,
    resolve_risk_category,
)
from .classifiers.blood_pressure import OfficeBPAssessment
from .classifiers.dosing import DoseCalculation
from .config import REFERENCE_RANGE_PERCENTILES, EngineConfig
from .errors import DomainRangeError, NoReferenceDataError
from .percentile import percentile_from_columns, percentile_from_z, z_from_percentile
from .selector import (
    StandardSelector,
    check_domain,
    normalize_kind,
    normalize_standard,
    standard_for_age,
)
from .tables import (
    ReferenceRow,
    ReferenceTableStore,
    default_store,
    load_reference_store,
    sex_code,
)
from .units import calculate_bmi, log_unit_warnings, normalize_value

logger = logging.getLogger(__name__)


class Measurement(BaseModel):
    """
    One clinical data point to place on a reference standard.

    Age is given either as ``age_in_months``, as a birth/measurement date pair,
    or (INTERGROWTH only) as gestational weeks and days.
    """

    value: float
    sex: str
    calculator_kind: str
    standard: str
    unit: Optional[str] = None
    date_of_birth: Optional[date] = None
    date_of_measurement: Optional[date] = None
    age_in_months: Optional[float] = None
    gestational_weeks: Optional[int] = None
    gestational_days: Optional[int] = None

    @field_validator("sex", mode="before")
    @classmethod
    def validate_sex(cls, v: Union[str, int]) -> str:
        return "male" if sex_code(v) == 1 else "female"

    @field_validator("calculator_kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        return normalize_kind(v)

    @field_validator("standard")
    @classmethod
    def validate_standard(cls, v: str) -> str:
        return normalize_standard(v)

    @field_validator("age_in_months")
    @classmethod
    def validate_age(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("Age in months must not be negative")
        return v

    @model_validator(mode="after")
    def validate_age_source(self) -> "Measurement":
        if self.standard == "intergrowth":
            if self.gestational_weeks is None or self.gestational_days is None:
                raise ValueError(
                    "Gestational weeks and days are required for INTERGROWTH"
                )
        elif self.age_in_months is None and (
            self.date_of_birth is None or self.date_of_measurement is None
        ):
            raise ValueError(
                "Either age_in_months or date_of_birth and date_of_measurement are required"
            )
        return self


class CalculationResult(BaseModel):
    """
    Outcome of one calculation. Serializes with camelCase keys
    (zScore, percentile, classification, standardUsed, warning, ...).
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    z_score: Optional[float] = None
    percentile: Optional[float] = None
    classification: Optional[str] = None
    standard_used: str
    warning: Optional[str] = None
    value: Optional[float] = None
    age_key: Optional[Union[float, str]] = None
    reference_range: Optional[Dict[str, float]] = None

    @property
    def has_data(self) -> bool:
        return self.percentile is not None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def reference_values(row: ReferenceRow, percentiles=REFERENCE_RANGE_PERCENTILES) -> Dict[str, float]:
    """
    Measurements at the given percentiles for a row, read from its columns where
    tabulated and derived from L, M, S otherwise.
    """
    values = {}
    for p in percentiles:
        label = f"P{p:g}"
        column = row.column(p)
        if column is not None:
            values[label] = column
        elif row.has_lms:
            values[label] = lms.value_from_z(z_from_percentile(p), row.L, row.M, row.S)
    return values


class PediatricCalculator:
    """
    Engine facade over an injected reference table store.

    Args:
        store: Reference tables; loaded from the bundled CSVs (and
            ``config.data_dir``) when omitted
        config: Engine settings; defaults to exact row matching
    """

    def __init__(
        self,
        store: Optional[ReferenceTableStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else load_reference_store(self.config)
        self.selector = StandardSelector(self.store, self.config.row_matching)

    def calculate(self, measurement: Optional[Measurement] = None, **fields: Any) -> CalculationResult:
        """
        Z-score, percentile and label for one measurement.

        Args:
            measurement: Prepared Measurement, or pass its fields as keywords

        Returns:
            CalculationResult; null-valued with a warning when no reference data
            covers the request

        Raises:
            ValueError: For invalid input
            DataIntegrityError: For malformed reference rows
        """
        if measurement is None:
            try:
                measurement = Measurement(**fields)
            except ValidationError as e:
                raise ValueError(f"Invalid measurement: {e}") from e

        kind = measurement.calculator_kind
        value = normalize_value(measurement.value, measurement.unit, kind)
        try:
            selection = self.selector.select_table(kind, measurement.standard, measurement.sex)
        except NoReferenceDataError as e:
            return self._no_data(measurement.standard, value, str(e))

        try:
            age_key = self._resolve_age_key(measurement)
        except DomainRangeError as e:
            return self._no_data(selection.table.name, value, str(e))
        if not selection.is_gestational:
            log_unit_warnings(value, kind, age_key)

        try:
            row = self.selector.find_row(selection, age_key)
        except NoReferenceDataError as e:
            return self._no_data(selection.table.name, value, str(e), age_key)

        z_score: Optional[float] = None
        if row.has_lms:
            z_score = lms.zscore(value, row.L, row.M, row.S)
            percentile = percentile_from_z(z_score)
        else:
            percentile = percentile_from_columns(value, row.percentile_columns)

        if kind == "bmi":
            label = classify("bmi", percentile=percentile)
        else:
            label = classify("growth", percentile=percentile, measure=kind)

        logger.debug(
            f"{selection.table.name} age={age_key} value={value} z={z_score} pct={percentile}"
        )
        return CalculationResult(
            z_score=z_score,
            percentile=percentile,
            classification=label,
            standard_used=selection.table.name,
            value=value,
            age_key=age_key,
            reference_range=reference_values(row),
        )

    def calculate_bmi_percentile(
        self,
        weight_kg: float,
        height_cm: float,
        sex: Union[str, int],
        standard: str = "cdc",
        **age: Any,
    ) -> CalculationResult:
        """BMI from weight and height, then BMI-for-age like any other measure."""
        bmi = calculate_bmi(weight_kg, height_cm)
        return self.calculate(
            value=bmi, sex=sex, calculator_kind="bmi", standard=standard, **age
        )

    def height_percentile(
        self, height_cm: float, sex: Union[str, int], age_in_months: float
    ) -> Optional[float]:
        """
        Height-for-age percentile used to adjust BP references: WHO below 24
        months, CDC from 24 months, interpolating between tabulated ages.

        Returns:
            Percentile, or None when the tables do not cover the age
        """
        standard = standard_for_age(age_in_months)
        try:
            selection = self.selector.select_table("height", standard, sex)
        except NoReferenceDataError:
            return None
        row = self.store.interpolate_row(selection.table, selection.sex, age_in_months)
        if row is None or not row.has_lms:
            return None
        return percentile_from_z(lms.zscore(height_cm, row.L, row.M, row.S))

    def assess_blood_pressure(
        self,
        systolic: float,
        diastolic: float,
        sex: Union[str, int],
        age_in_months: int,
        height_percentile: Optional[float] = None,
        height_cm: Optional[float] = None,
    ) -> OfficeBPAssessment:
        """
        Office BP assessment, deriving the height percentile from ``height_cm``
        when it is not supplied.

        Raises:
            ValueError: If neither height input is usable
            DomainRangeError: Outside 1 year to 17 years 11 months
        """
        if height_percentile is None:
            if height_cm is None:
                raise ValueError("Either height_percentile or height_cm is required")
            height_percentile = self.height_percentile(height_cm, sex, age_in_months)
            if height_percentile is None:
                raise NoReferenceDataError(
                    f"No height reference data for age {age_in_months} months"
                )
        return classify(
            "office_bp",
            systolic=systolic,
            diastolic=diastolic,
            sex=sex,
            age_in_months=age_in_months,
            height_percentile=height_percentile,
        )

    def assess_bilirubin(
        self,
        tsb: float,
        birth: datetime,
        measurement: datetime,
        gestational_weeks: float,
        **risk_factors: Any,
    ) -> BilirubinAssessment:
        """
        Phototherapy assessment from birth and sample times.

        Args:
            tsb: Total serum bilirubin (mg/dL)
            birth: Date and time of birth
            measurement: Date and time the sample was drawn
            gestational_weeks: Gestational age at birth
            **risk_factors: Keywords of ``has_neurotoxicity_risk_factors``

        Raises:
            ValueError: For invalid input or a sample before birth
            DomainRangeError: Below 35 weeks' gestation
        """
        age_in_hours = resolve_age_hours(birth, measurement)
        risk_category = resolve_risk_category(
            gestational_weeks, has_neurotoxicity_risk_factors(**risk_factors)
        )
        return classify(
            "bilirubin", tsb=tsb, age_in_hours=age_in_hours, risk_category=risk_category
        )

    def size_ett(
        self,
        age_in_years: Optional[float] = None,
        date_of_birth: Optional[date] = None,
        date_of_measurement: Optional[date] = None,
    ) -> ETTRecommendation:
        """
        Endotracheal tube sizes for an age in years, or for completed years
        between two dates.
        """
        if age_in_years is None:
            if date_of_birth is None or date_of_measurement is None:
                raise ValueError(
                    "Either age_in_years or date_of_birth and date_of_measurement are required"
                )
            age_in_years = resolve_age_years(date_of_birth, date_of_measurement)
        return classify("ett", age_in_years=age_in_years)

    def calculate_dose(self, dose: float, dosage_type: str, **inputs: Any) -> DoseCalculation:
        """Weight- or BSA-based dose; keywords as for ``classifiers.dosing.calculate_dose``."""
        return classify("dose", dose=dose, dosage_type=dosage_type, **inputs)

    def _resolve_age_key(self, measurement: Measurement) -> Union[float, str]:
        if measurement.standard == "intergrowth":
            return resolve_gestational_key(
                measurement.gestational_weeks, measurement.gestational_days
            )
        if measurement.age_in_months is not None:
            age = float(measurement.age_in_months)
        else:
            age = float(
                resolve_age_months(measurement.date_of_birth, measurement.date_of_measurement)
            )
        check_domain(measurement.standard, age)
        return age

    @staticmethod
    def _no_data(
        standard_used: str,
        value: Optional[float],
        warning: str,
        age_key: Optional[Union[float, str]] = None,
    ) -> CalculationResult:
        logger.info(f"No result for {standard_used}: {warning}")
        return CalculationResult(
            standard_used=standard_used, value=value, age_key=age_key, warning=warning
        )


@functools.lru_cache(maxsize=1)
def default_calculator() -> PediatricCalculator:
    """Calculator over the bundled tables and PEDCALC_* settings."""
    return PediatricCalculator(default_store(), EngineConfig.from_env())


def calculate(**fields: Any) -> CalculationResult:
    """Module-level shortcut for ``default_calculator().calculate(...)``."""
    return default_calculator().calculate(**fields)
