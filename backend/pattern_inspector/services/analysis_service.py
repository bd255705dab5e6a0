from __future__ import annotations

import hashlib
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd

from ..config.settings import (
    LOCATION_COLUMN as DEFAULT_LOCATION_COLUMN,
    LOCATION_NAME_COLUMN as DEFAULT_LOCATION_NAME_COLUMN,
    PARENT_LOCATION_COLUMN as DEFAULT_PARENT_LOCATION_COLUMN,
    REQUIRED_PATTERN_COLUMNS as DEFAULT_PATTERN_COLUMNS,
    STRICT_PATTERNS as DEFAULT_STRICT_PATTERNS,
    settings,
)
from ..core.analyzer import analyze
from ..core.patterns import ParseError, parse_patterns
from ..core.stats import summarize, summarize_groups, summary_to_dict
from ..db import SessionLocal, init_db, save_run
from .validation_service import ValidationResult, validate_uploads

# --- Paths & Constants ---
ANALYSIS_DIR = settings.DATA_DIR / "analysis"
CACHE_DIR = ANALYSIS_DIR / "cache"
UPLOADS_DIR = ANALYSIS_DIR / "uploads"
CONFIG_PATH = ANALYSIS_DIR / "config.json"
PIPELINE_VERSION = "1.0.0"

ProgressCallback = Callable[[float], None]

# --- In-memory state ---
JOBS: Dict[str, Job] = {}

# --- Data Models ---
@dataclass
class Job:
    job_id: str
    status: str  # queued, running, finished, failed
    dataset_path: str
    dataset_name: str
    patterns_path: str
    patterns_name: str
    config: Dict[str, Any]
    progress: float = 0.0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "progress": self.progress,
            "error": self.error,
            "dataset": self.dataset_name,
            "patterns": self.patterns_name,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

# --- Initial Setup ---
for d in (ANALYSIS_DIR, CACHE_DIR, UPLOADS_DIR):
    d.mkdir(parents=True, exist_ok=True)
init_db()

def _ensure_analysis_logger() -> logging.Logger:
    logger = logging.getLogger("analysis")
    if not logger.hasHandlers():
        logger.setLevel(logging.INFO)
        logs_dir = settings.LOG_DIR
        logs_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logs_dir / "analysis.log", encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        logger.addHandler(fh)
    return logger

logger = _ensure_analysis_logger()

# --- Core Service Functions: Hashing, I/O, Caching ---
def _md5_parts(*parts: bytes) -> str:
    digest = hashlib.md5()
    for part in parts:
        digest.update(hashlib.md5(part).digest())
    return digest.hexdigest()

def load_rows_from_bytes(file_bytes: bytes, filename: str) -> List[Dict[str, Any]]:
    """Parse CSV bytes into row records: trimmed lower-case headers, numbers typed, blanks as None."""
    df = None
    for encoding in ['utf-8-sig', 'latin1', 'cp1252']:
        try:
            df = pd.read_csv(
                io.BytesIO(file_bytes), encoding=encoding, skip_blank_lines=True,
                keep_default_na=False, na_values=[""],
            )
            logger.info(f"Successfully read CSV '{filename}' with encoding '{encoding}'")
            break
        except UnicodeDecodeError:
            logger.warning(f"Failed to read CSV '{filename}' with encoding '{encoding}'")
            continue
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.exception(f"Failed to parse CSV '{filename}'")
            raise ValueError(f"Could not parse file '{filename}'. Ensure it's a valid CSV file.") from e
    if df is None:
        raise ValueError(f"Could not decode CSV file '{filename}' with attempted encodings.")

    df.columns = [str(c).strip().lower() for c in df.columns]
    df = df.dropna(how="all")
    df.replace([np.inf, -np.inf], np.nan, inplace=True)
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")

def cache_path_for(job_id: str) -> Path:
    return CACHE_DIR / f"{job_id}.joblib"

def save_cache(job_id: str, data: Dict[str, Any]):
    joblib.dump(data, cache_path_for(job_id), compress=3)
    logger.info(f"Saved analysis cache for job {job_id}")

def load_cache(job_id: str) -> Optional[Dict[str, Any]]:
    path = cache_path_for(job_id)
    return joblib.load(path) if path.exists() else None

def save_upload(job_id: str, kind: str, file_bytes: bytes) -> Path:
    path = UPLOADS_DIR / f"{job_id}_{kind}.csv"
    path.write_bytes(file_bytes)
    return path

# --- Analysis Config Management ---
def get_runtime_config() -> Dict[str, Any]:
    config = {
        "location_column": DEFAULT_LOCATION_COLUMN,
        "name_column": DEFAULT_LOCATION_NAME_COLUMN,
        "parent_column": DEFAULT_PARENT_LOCATION_COLUMN,
        "pattern_columns": list(DEFAULT_PATTERN_COLUMNS),
        "strict_patterns": DEFAULT_STRICT_PATTERNS,
    }
    if CONFIG_PATH.exists():
        config.update(json.loads(CONFIG_PATH.read_text(encoding="utf-8")))
    return config

def update_runtime_config(payload: Dict[str, Any]) -> Dict[str, Any]:
    current_config = get_runtime_config()
    for key in ("location_column", "name_column", "parent_column"):
        if key in payload:
            payload[key] = str(payload[key]).strip().lower()
    current_config.update(payload)
    CONFIG_PATH.write_text(json.dumps(current_config, indent=2), encoding="utf-8")
    logger.info(f"Updated runtime config: {payload}")
    return current_config

# --- Job Management ---
def prepare_job(
    dataset_bytes: bytes, patterns_bytes: bytes, config: Dict[str, Any]
) -> Tuple[str, Path, Path]:
    config_bytes = json.dumps(config, sort_keys=True).encode("utf-8")
    job_id = _md5_parts(dataset_bytes, patterns_bytes, config_bytes)
    dataset_path = save_upload(job_id, "dataset", dataset_bytes)
    patterns_path = save_upload(job_id, "patterns", patterns_bytes)
    return job_id, dataset_path, patterns_path

def register_job(
    job_id: str,
    dataset_path: Path,
    dataset_name: str,
    patterns_path: Path,
    patterns_name: str,
    config: Dict[str, Any],
) -> Job:
    job = Job(
        job_id=job_id,
        status="queued",
        dataset_path=str(dataset_path),
        dataset_name=dataset_name,
        patterns_path=str(patterns_path),
        patterns_name=patterns_name,
        config=dict(config),
    )
    JOBS[job_id] = job
    logger.info(f"Registered job_id={job_id}, total_jobs={len(JOBS)}")
    return job

def get_job(job_id: str) -> Optional[Job]:
    return JOBS.get(job_id)

def job_status(job_id: str) -> Dict[str, Any]:
    job = get_job(job_id)
    if not job:
        return {"job_id": job_id, "status": "not_found"}
    if job.status not in ["failed", "finished"] and cache_path_for(job_id).exists():
        job.status = "finished"
        job.progress = 1.0
        job.updated_at = datetime.now(timezone.utc)
    return job.to_dict()

def _set_progress(job: Job, value: float) -> None:
    job.progress = value
    job.updated_at = datetime.now(timezone.utc)

def _record_run(job: Job, results: Optional[Dict[str, Any]]) -> None:
    db = SessionLocal()
    try:
        save_run(
            db,
            job_id=job.job_id,
            status=job.status,
            dataset_name=job.dataset_name,
            dataset_size=Path(job.dataset_path).stat().st_size,
            patterns_name=job.patterns_name,
            patterns_size=Path(job.patterns_path).stat().st_size,
            pattern_count=len(results["patterns"]) if results else 0,
            error_count=len(results["patternErrors"]) if results else 0,
            location_count=len(results["locations"]) if results else 0,
            target=results["target"] if results else None,
            error=job.error,
        )
    except Exception:  # noqa: BLE001
        logger.exception(f"Could not record run history for job {job.job_id}")
    finally:
        db.close()

def run_job(job_id: str):
    job = get_job(job_id)
    if not job:
        logger.error(f"run_job called with unknown job_id={job_id}")
        return

    job.status = "running"
    job.updated_at = datetime.now(timezone.utc)
    logger.info(f"Starting job {job_id} for dataset='{job.dataset_name}' patterns='{job.patterns_name}'")

    results: Optional[Dict[str, Any]] = None
    try:
        if (results := load_cache(job_id)):
            logger.info(f"Cache hit for job {job_id}. Loaded pre-computed results.")
        else:
            logger.info(f"Cache miss for job {job_id}. Running analysis.")
            results = analyze_files(
                Path(job.dataset_path).read_bytes(),
                job.dataset_name,
                Path(job.patterns_path).read_bytes(),
                job.patterns_name,
                job.config,
                progress=lambda value: _set_progress(job, value),
            )
            save_cache(job_id, results)

        job.status = "finished"
        job.progress = 1.0
        logger.info(f"Job {job_id} finished successfully.")
    except Exception as e:
        job.status = "failed"
        job.error = str(e)
        results = None
        logger.exception(f"Job {job_id} failed: {e}")
    finally:
        job.updated_at = datetime.now(timezone.utc)
    _record_run(job, results)

# --- Analysis Pipeline ---
def analyze_rows(
    dataset_rows: List[Dict[str, Any]],
    pattern_rows: List[Dict[str, Any]],
    config: Dict[str, Any],
    progress: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    report = progress or (lambda value: None)

    parsed = parse_patterns(pattern_rows)
    failures = [r for r in parsed if not r.ok]
    if failures and config.get("strict_patterns"):
        first = failures[0]
        raise ParseError(f"Pattern row {first.index}: {first.error}")
    if failures:
        logger.warning(f"{len(failures)} of {len(parsed)} patterns could not be parsed and were skipped")
    patterns = [r.pattern for r in parsed if r.ok]
    report(0.4)

    data_summary = summarize(dataset_rows)
    parent_summary = summarize_groups(dataset_rows, config["parent_column"])
    report(0.5)

    analysis = analyze(
        dataset_rows,
        patterns,
        location_attribute=config["location_column"],
        name_attribute=config["name_column"],
        parent_attribute=config["parent_column"],
        max_workers=settings.ANALYZE_WORKERS,
    )
    report(0.9)

    return {
        "version": PIPELINE_VERSION,
        "data": dataset_rows,
        "dataSummary": summary_to_dict(data_summary),
        "parentLocationSummary": {k: summary_to_dict(v) for k, v in parent_summary.items()},
        "patternErrors": [r.to_dict() for r in failures],
        **analysis.to_dict(),
    }

def analyze_files(
    dataset_bytes: bytes,
    dataset_name: str,
    patterns_bytes: bytes,
    patterns_name: str,
    config: Dict[str, Any],
    progress: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    report = progress or (lambda value: None)
    report(0.1)

    dataset_rows = load_rows_from_bytes(dataset_bytes, dataset_name)
    pattern_rows = load_rows_from_bytes(patterns_bytes, patterns_name)
    logger.info(f"Loaded {len(dataset_rows)} dataset rows and {len(pattern_rows)} pattern rows")
    report(0.3)

    results = analyze_rows(dataset_rows, pattern_rows, config, progress=report)
    results.update({
        "fileMetadata": {
            "datasetFile": {"name": dataset_name, "size": len(dataset_bytes)},
            "patternFile": {"name": patterns_name, "size": len(patterns_bytes)},
        },
        "computedAt": datetime.now(timezone.utc).isoformat(),
    })
    report(1.0)
    return results

def validate_pair(
    dataset_name: Optional[str],
    dataset_bytes: Optional[bytes],
    patterns_name: Optional[str],
    patterns_bytes: Optional[bytes],
) -> ValidationResult:
    return validate_uploads(dataset_name, dataset_bytes, patterns_name, patterns_bytes, get_runtime_config())

# --- Result Views ---
def get_cached_result_by_job(job_id: str) -> Optional[Dict[str, Any]]:
    return load_cache(job_id)

def _require_result(job_id: str) -> Dict[str, Any]:
    data = get_cached_result_by_job(job_id)
    if not data:
        raise FileNotFoundError(f"Analysis results for job {job_id} are not available.")
    return data

def pattern_detail(job_id: str, pattern_id: int) -> Dict[str, Any]:
    for pattern in _require_result(job_id)["patterns"]:
        if pattern["id"] == pattern_id:
            return pattern
    raise KeyError(f"Pattern {pattern_id} not found.")

def location_detail(job_id: str, location_id: str) -> Dict[str, Any]:
    data = _require_result(job_id)
    key = str(location_id).strip()
    if key not in data["locations"]:
        raise KeyError(f"Location '{location_id}' not found.")
    summary = dict(data["locations"][key])
    summary["id"] = key
    parent = summary.get("parent")
    summary["parentSummary"] = data["parentLocationSummary"].get(parent)
    summary["patternDetails"] = [p for p in data["patterns"] if p["id"] in summary["patterns"]]
    return summary

def list_patterns(job_id: str, min_rows: int = 0) -> List[Dict[str, Any]]:
    return [
        {k: v for k, v in p.items() if k != "summary"}
        for p in _require_result(job_id)["patterns"]
        if p["rowCount"] >= min_rows
    ]
