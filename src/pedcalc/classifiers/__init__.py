"""
Clinical classifiers keyed by calculator kind.

Each entry takes keyword inputs and returns a label or an assessment model.
"""

from typing import Any, Callable, Dict

from .airway import size_endotracheal_tube
from .bilirubin import assess_bilirubin
from .blood_pressure import assess_ambulatory_bp, assess_office_bp
from .dosing import calculate_dose
from .growth import classify_bmi, classify_growth

registry: Dict[str, Callable[..., Any]] = {
    "growth": classify_growth,
    "bmi": classify_bmi,
    "bilirubin": assess_bilirubin,
    "ett": size_endotracheal_tube,
    "office_bp": assess_office_bp,
    "ambulatory_bp": assess_ambulatory_bp,
    "dose": calculate_dose,
}


def classify(kind: str, **inputs: Any) -> Any:
    """
    Run the classifier registered for ``kind``.

    Raises:
        KeyError: If no classifier is registered for the kind
    """
    try:
        strategy = registry[kind]
    except KeyError:
        raise KeyError(f"Unsupported classifier '{kind}'") from None
    return strategy(**inputs)


__all__ = ["registry", "classify"]
