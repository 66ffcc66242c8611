#!/usr/bin/env python3
"""
Download CDC/WHO growth reference tables into pedcalc's CSV schema.

Each catalog table is written as ``<table>.csv`` with the columns
``Sex,Agemos,L,M,S`` followed by whichever percentile columns (P3, P50, ...) the
source publishes. A ``sources.json`` manifest records the URL, SHA-256 and
download time of every source file.

Point PEDCALC_DATA_DIR at the output directory to use the full tables instead of
the abridged ones bundled with the package.

CDC 2000 child tables cover 24-240 months and the CDC infant tables 0-36 months.
WHO tables are kept up to and including 24 months. WHO BMI-for-age comes from
the tab-separated tables on the WHO site; the other WHO tables from the CDC
mirror.
"""

import argparse
import hashlib
import io
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from tqdm import tqdm
from urllib3.util.retry import Retry

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

BASE_COLUMNS = ["Sex", "Agemos", "L", "M", "S"]
PERCENTILE_COLUMNS = [
    "P01", "P1", "P3", "P5", "P10", "P15", "P25", "P50",
    "P75", "P85", "P90", "P95", "P97", "P99", "P999",
]
WHO_MAX_MONTHS = 24.0

CDC_BASE = "https://www.cdc.gov/growthcharts/data/zscore"
WHO_BASE = "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts"
# WHO publishes BMI-for-age only on its own site, as tab-separated tables
WHO_BMI_BASE = "https://www.who.int/childgrowth/standards"

# table name -> [(source name, sex code or None when the file has a Sex column, url)]
DATA_SOURCES: Dict[str, Dict[str, List[Tuple[str, Optional[int], str]]]] = {
    "cdc": {
        "cdc_weight": [("wtage", None, f"{CDC_BASE}/wtage.csv")],
        "cdc_height": [("statage", None, f"{CDC_BASE}/statage.csv")],
        "cdc_bmi": [("bmiagerev", None, f"{CDC_BASE}/bmiagerev.csv")],
        "cdc_infant_weight": [("wtageinf", None, f"{CDC_BASE}/wtageinf.csv")],
        "cdc_infant_height": [("lenageinf", None, f"{CDC_BASE}/lenageinf.csv")],
        "cdc_infant_head_circumference": [
            ("hcageinf", None, f"{CDC_BASE}/hcageinf.csv")
        ],
    },
    "who": {
        "who_weight": [
            ("boys_wtage", 1, f"{WHO_BASE}/WHO-Boys-Weight-for-age-Percentiles.csv"),
            ("girls_wtage", 2, f"{WHO_BASE}/WHO-Girls-Weight-for-age%20Percentiles.csv"),
        ],
        "who_height": [
            ("boys_lenage", 1, f"{WHO_BASE}/WHO-Boys-Length-for-age-Percentiles.csv"),
            ("girls_lenage", 2, f"{WHO_BASE}/WHO-Girls-Length-for-age-Percentiles.csv"),
        ],
        "who_head_circumference": [
            (
                "boys_headage",
                1,
                f"{WHO_BASE}/WHO-Boys-Head-Circumference-for-age-Percentiles.csv",
            ),
            (
                "girls_headage",
                2,
                f"{WHO_BASE}/WHO-Girls-Head-Circumference-for-age-Percentiles.csv",
            ),
        ],
        "who_bmi": [
            ("boys_bfa", 1, f"{WHO_BMI_BASE}/tab_bmi_boys_p_0_2.txt"),
            ("girls_bfa", 2, f"{WHO_BMI_BASE}/tab_bmi_girls_p_0_2.txt"),
        ],
    },
}


def download_csv(url: str, timeout: int = 30) -> str:
    """Download CSV content from URL with retries."""
    try:
        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=2,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)

        with requests.Session() as session:
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            response = session.get(url, timeout=timeout, verify=True)
            response.raise_for_status()
            return response.text
    except Exception as e:
        logger.error(f"Failed to download {url}: {e}")
        raise


def compute_sha256(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _read_frame(content: str) -> pd.DataFrame:
    content = content.replace("\r\n", "\n")
    header = content.split("\n", 1)[0]
    sep = "\t" if "\t" in header else ","
    frame = pd.read_csv(io.StringIO(content), sep=sep, skipinitialspace=True)
    frame.columns = [str(col).replace("\ufeff", "").strip() for col in frame.columns]
    return frame


def _select_columns(frame: pd.DataFrame) -> pd.DataFrame:
    columns = BASE_COLUMNS + [col for col in PERCENTILE_COLUMNS if col in frame.columns]
    out = frame[columns].copy()
    for col in columns:
        out[col] = pd.to_numeric(out[col], errors="coerce")
    return out


def parse_cdc_csv(content: str, name: str) -> pd.DataFrame:
    """
    Parse a CDC LMS file into the pedcalc schema.

    Repeated header lines and rows with a sex other than 1/2 are dropped. The
    BMI file's lowercase ``sex``/``agemos`` headers are normalized.

    Raises:
        ValueError: If Sex, Agemos, L, M or S is missing
    """
    frame = _read_frame(content)
    frame = frame.rename(columns={"sex": "Sex", "agemos": "Agemos"})
    missing = [col for col in BASE_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"{name}: missing columns {missing}")

    out = _select_columns(frame)
    out = out[out["Sex"].isin([1, 2])].copy()
    out["Sex"] = out["Sex"].astype(int)
    validate_frame(out, name)
    return out.reset_index(drop=True)


def parse_who_csv(content: str, name: str, sex: int) -> pd.DataFrame:
    """
    Parse a single-sex WHO file, keeping ages up to 24 months.

    Raises:
        ValueError: If Month, L, M or S is missing
    """
    frame = _read_frame(content)
    missing = [col for col in ("Month", "L", "M", "S") if col not in frame.columns]
    if missing:
        raise ValueError(f"{name}: missing columns {missing}")

    frame = frame.rename(columns={"Month": "Agemos"})
    frame.insert(0, "Sex", sex)
    out = _select_columns(frame)
    out = out[out["Agemos"] <= WHO_MAX_MONTHS]
    validate_frame(out, name)
    return out.reset_index(drop=True)


def validate_frame(frame: pd.DataFrame, name: str) -> None:
    """
    Check a parsed table before it is written.

    Raises:
        ValueError: For non-finite LMS values, non-positive M or S, or ages that
            decrease within a sex
    """
    if frame.empty:
        logger.warning(f"{name}: no rows parsed")
        return

    for col in ("Agemos", "L", "M", "S"):
        if not np.all(np.isfinite(frame[col].to_numpy(dtype=float))):
            raise ValueError(f"{name}: non-finite {col} values")
    for col in ("M", "S"):
        if (frame[col] <= 0).any():
            raise ValueError(f"{name}: non-positive {col} values")

    for sex, group in frame.groupby("Sex"):
        ages = group["Agemos"].to_numpy(dtype=float)
        if len(ages) > 1 and not np.all(ages[:-1] <= ages[1:]):
            raise ValueError(f"{name}: ages not monotonically increasing for sex {sex}")

    max_age = frame["Agemos"].max()
    if max_age > 241:
        logger.warning(
            f"{name}: ages up to {max_age:.1f} months; values >241 suggest years, not months"
        )


def save_table(frame: pd.DataFrame, output_path: Path) -> None:
    frame.to_csv(output_path, index=False)
    logger.info(f"Saved {len(frame)} rows to {output_path}")


def load_manifest(path: Path) -> Dict[str, dict]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_manifest(manifest: Dict[str, dict], path: Path) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)


def build_table(
    table: str, sources: List[Tuple[str, Optional[int], str]], manifest: Dict[str, dict]
) -> pd.DataFrame:
    """Download and parse every source file of one table."""
    frames = []
    for name, sex, url in sources:
        content = download_csv(url)
        if sex is None:
            frames.append(parse_cdc_csv(content, name))
        else:
            frames.append(parse_who_csv(content, name, sex))
        manifest[name] = {
            "table": table,
            "url": url,
            "sha256": compute_sha256(content),
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
    return pd.concat(frames, ignore_index=True)


def main(
    output_dir: Optional[Path] = None,
    strict_mode: bool = False,
    source_filter: Optional[str] = None,
    force: bool = False,
) -> List[str]:
    """
    Download all (or one source type's) tables.

    Args:
        output_dir: Destination directory; defaults to ``data/`` at the repo root
        strict_mode: Raise if any table fails instead of logging and continuing
        source_filter: "cdc" or "who" to fetch only that source type
        force: Re-download tables whose CSV already exists

    Returns:
        Names of the tables written

    Raises:
        RuntimeError: In strict mode, if any table failed
    """
    output_dir = Path(output_dir) if output_dir else Path(__file__).parent.parent / "data"
    output_dir.mkdir(parents=True, exist_ok=True)
    manifest_path = output_dir / "sources.json"
    manifest = load_manifest(manifest_path)

    written: List[str] = []
    failed: List[str] = []
    total = sum(len(tables) for tables in DATA_SOURCES.values())
    with tqdm(total=total, desc="Fetching tables") as pbar:
        for source_type, tables in DATA_SOURCES.items():
            if source_filter and source_type != source_filter:
                pbar.update(len(tables))
                continue

            for table, sources in tables.items():
                pbar.set_postfix({"table": table})
                pbar.update(1)
                output_path = output_dir / f"{table}.csv"
                if output_path.exists() and not force:
                    logger.info(f"Skipping {table}: {output_path} exists (use --force)")
                    continue
                try:
                    frame = build_table(table, sources, manifest)
                    save_table(frame, output_path)
                    written.append(table)
                except Exception as e:
                    failed.append(f"{source_type}::{table}")
                    logger.error(f"Failed to process {source_type}::{table}: {e}")

    save_manifest(manifest, manifest_path)

    if strict_mode and failed:
        raise RuntimeError(
            f"Strict mode failed: Unable to process tables: {', '.join(failed)}"
        )
    logger.info(f"Wrote {len(written)} tables to {output_dir}")
    return written


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Download growth reference tables from CDC and WHO sources."
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory to write CSV tables to (default: data/ at the repo root)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-download tables even if their CSV already exists",
    )
    parser.add_argument(
        "--source",
        choices=["cdc", "who"],
        help="Download only from specified source type (cdc or who)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Strict mode: exit on any error instead of continuing with warnings",
    )
    args = parser.parse_args()

    main(
        output_dir=args.output_dir,
        strict_mode=args.strict,
        source_filter=args.source,
        force=args.force,
    )
