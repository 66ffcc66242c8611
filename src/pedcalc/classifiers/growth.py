"""Interpretation labels for growth and BMI percentiles."""


def classify_growth(percentile: float, measure: str = "growth") -> str:
    """
    Label a growth percentile.

    Args:
        percentile: Percentile (0-100)
        measure: Measure name used in the label, e.g. "weight"

    Returns:
        Label such as "Normal weight (25th-75th percentile)"
    """
    measure = measure.replace("_", " ")
    if percentile < 3:
        return f"Very low {measure} (<3rd percentile)"
    elif percentile < 10:
        return f"Low {measure} (3rd-10th percentile)"
    elif percentile < 25:
        return f"Low-normal {measure} (10th-25th percentile)"
    elif percentile <= 75:
        return f"Normal {measure} (25th-75th percentile)"
    elif percentile <= 90:
        return f"High-normal {measure} (75th-90th percentile)"
    elif percentile <= 97:
        return f"High {measure} (90th-97th percentile)"
    else:
        return f"Very high {measure} (>97th percentile)"


def classify_bmi(percentile: float) -> str:
    """BMI-for-age weight status (CDC cut-offs)."""
    if percentile < 5:
        return "Underweight (<5th percentile)"
    elif percentile < 85:
        return "Healthy weight (5th-85th percentile)"
    elif percentile < 95:
        return "Overweight (85th-95th percentile)"
    else:
        return "Obese (≥95th percentile)"
