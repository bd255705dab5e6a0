from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import get_db, latest_run, list_runs
from ..models.schemas import AnalysisConfigUpdate, ValidationResponse
from ..services.analysis_service import (
    get_cached_result_by_job,
    get_runtime_config,
    job_status,
    list_patterns,
    location_detail,
    pattern_detail,
    prepare_job,
    register_job,
    run_job,
    update_runtime_config,
    validate_pair,
)
from ..utils.logger import get_logger

router = APIRouter(prefix="/analysis", tags=["analysis"])
log = get_logger("router.analysis")


def _processing(job_id: str) -> Optional[JSONResponse]:
    st = job_status(job_id)
    if st.get("status") == "not_found":
        if get_cached_result_by_job(job_id):
            return None
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    if st.get("status") == "failed":
        raise HTTPException(status_code=422, detail={"status": "failed", "error": st.get("error")})
    if st.get("status") != "finished":
        return JSONResponse(status_code=202, content={"detail": "processing", "status": st.get("status"), "job": st})
    return None


def _result_or_404(job_id: str) -> Dict[str, Any]:
    data = get_cached_result_by_job(job_id)
    if not data:
        raise HTTPException(status_code=404, detail="Results are not ready")
    return data


async def _read_pair(dataset: Optional[UploadFile], patterns: Optional[UploadFile]):
    dataset_bytes = await dataset.read() if dataset else None
    patterns_bytes = await patterns.read() if patterns else None
    return dataset_bytes, patterns_bytes


@router.post("/validate", response_model=ValidationResponse)
async def validate(
    dataset: Optional[UploadFile] = File(None),
    patterns: Optional[UploadFile] = File(None),
):
    dataset_bytes, patterns_bytes = await _read_pair(dataset, patterns)
    result = validate_pair(
        dataset.filename if dataset else None,
        dataset_bytes,
        patterns.filename if patterns else None,
        patterns_bytes,
    )
    return result.to_dict()


@router.post("/upload")
async def upload_data(
    background: BackgroundTasks,
    dataset: UploadFile = File(...),
    patterns: UploadFile = File(...),
):
    """Receive a dataset CSV and a pattern CSV, validate them and start the analysis job."""
    log.info("Upload received: dataset=%s patterns=%s", dataset.filename, patterns.filename)
    dataset_bytes, patterns_bytes = await _read_pair(dataset, patterns)
    log.info("Files read into memory, dataset=%d bytes, patterns=%d bytes", len(dataset_bytes), len(patterns_bytes))

    validation = validate_pair(dataset.filename, dataset_bytes, patterns.filename, patterns_bytes)
    if not validation.success:
        raise HTTPException(
            status_code=400,
            detail={"status": "error", "message": "Validation failed", "errors": validation.errors},
        )

    try:
        config = get_runtime_config()
        job_id, dataset_path, patterns_path = prepare_job(dataset_bytes, patterns_bytes, config)
        log.info("Job prepared. job_id=%s, dataset=%s, patterns=%s", job_id, dataset_path, patterns_path)

        register_job(job_id, dataset_path, dataset.filename, patterns_path, patterns.filename, config)
        background.add_task(run_job, job_id)
        log.info("Background task for job_id=%s scheduled.", job_id)

        return {
            "status": "success",
            "message": "Files uploaded successfully and analysis started.",
            "job_id": job_id,
            "dataset": dataset.filename,
            "patterns": patterns.filename,
            "warnings": validation.warnings,
        }
    except Exception as e:
        log.exception("Upload failed for dataset=%s patterns=%s. Error: %s", dataset.filename, patterns.filename, e)
        raise HTTPException(
            status_code=500,
            detail={"status": "error", "message": f"Could not process files: {e}"},
        )


@router.get("/status/{job_id}")
async def status(job_id: str):
    return job_status(job_id)


@router.get("/result")
async def full_result(job_id: str = Query(...)):
    if (pending := _processing(job_id)) is not None:
        return pending
    return _result_or_404(job_id)


@router.get("/summary")
async def summary(job_id: str = Query(...)):
    if (pending := _processing(job_id)) is not None:
        return pending
    data = _result_or_404(job_id)
    return {"dataSummary": data["dataSummary"], "target": data["target"], "rows": len(data["data"])}


@router.get("/parents")
async def parents(job_id: str = Query(...), name: Optional[str] = Query(None)):
    if (pending := _processing(job_id)) is not None:
        return pending
    groups = _result_or_404(job_id)["parentLocationSummary"]
    if name is None:
        return groups
    if name not in groups:
        raise HTTPException(status_code=404, detail=f"Parent location '{name}' not found")
    return groups[name]


@router.get("/patterns")
async def patterns(job_id: str = Query(...), min_rows: int = Query(0, ge=0)):
    if (pending := _processing(job_id)) is not None:
        return pending
    return list_patterns(job_id, min_rows=min_rows)


@router.get("/patterns/{pattern_id}")
async def pattern(pattern_id: int, job_id: str = Query(...)):
    if (pending := _processing(job_id)) is not None:
        return pending
    try:
        return pattern_detail(job_id, pattern_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))


@router.get("/pattern-errors")
async def pattern_errors(job_id: str = Query(...)):
    if (pending := _processing(job_id)) is not None:
        return pending
    return _result_or_404(job_id)["patternErrors"]


@router.get("/locations")
async def locations(job_id: str = Query(...), matched_only: bool = Query(False)):
    if (pending := _processing(job_id)) is not None:
        return pending
    locs = _result_or_404(job_id)["locations"]
    if matched_only:
        return {k: v for k, v in locs.items() if v["patterns"]}
    return locs


@router.get("/locations/{location_id}")
async def location(location_id: str, job_id: str = Query(...)):
    if (pending := _processing(job_id)) is not None:
        return pending
    try:
        return location_detail(job_id, location_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))


@router.get("/export/json")
async def export_json(job_id: str = Query(...)):
    data = get_cached_result_by_job(job_id)
    if not data:
        raise HTTPException(status_code=404, detail="No data")
    headers = {
        "Content-Disposition": f"attachment; filename=\"patterns_{job_id}_{datetime.now(timezone.utc).strftime('%Y%m%d')}.json\""
    }
    return JSONResponse(content=data, media_type="application/json", headers=headers)


@router.get("/runs")
async def runs(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    return [run.to_dict() for run in list_runs(db, limit=limit)]


@router.get("/runs/latest")
async def runs_latest(db: Session = Depends(get_db)):
    run = latest_run(db)
    if not run:
        raise HTTPException(status_code=404, detail="No finished analysis yet")
    return run.to_dict()


@router.get("/config")
async def get_config():
    return {"config": get_runtime_config()}


@router.post("/config")
async def post_config(payload: AnalysisConfigUpdate):
    saved = update_runtime_config(payload.model_dump(exclude_none=True))
    log.info("Analysis config updated: %s", saved)
    return {"config": saved}
