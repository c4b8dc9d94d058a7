"""Routes for critical CSS extraction."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from critcss.api.dependencies import get_auth_dependency
from critcss.models.critical_css import (
    CriticalCSSJobStatusResponse,
    CriticalCSSRequest,
    CriticalCSSResult,
)
from critcss.models.job import JobStatus
from critcss.services import job_store
from critcss.services.critical_css import critical_css_extractor
from critcss.tasks.css_tasks import generate_critical_css

router = APIRouter(prefix="/critical-css", tags=["critical-css"], dependencies=[Depends(get_auth_dependency)])


@router.post(
    "/extract",
    response_model=CriticalCSSResult,
    summary="Split stylesheets into critical and deferred CSS",
)
def extract_critical_css(payload: CriticalCSSRequest) -> CriticalCSSResult:
    """Run the extraction synchronously and return both bundles with the report."""

    result = critical_css_extractor.extract(payload)
    if result.error:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error)
    return result


@router.post(
    "/generate",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue a critical CSS generation job",
)
def enqueue_critical_css(payload: CriticalCSSRequest) -> dict:
    """Create a job that extracts critical CSS in the worker."""

    job_id = f"css_{uuid.uuid4().hex}"
    body = payload.model_dump(mode="json")
    job_store.create_job(job_id=job_id, job_type="critical_css", payload=body)
    generate_critical_css.delay(job_id=job_id, payload=body)
    return {"job_id": job_id, "status": JobStatus.queued}


@router.get(
    "/{job_id}",
    response_model=CriticalCSSJobStatusResponse,
    summary="Retrieve critical CSS job status",
)
def get_critical_css_job(job_id: str) -> CriticalCSSJobStatusResponse:
    """Return job status and the extraction result once available."""

    job = job_store.job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    result = None
    if job.result:
        result = CriticalCSSResult.model_validate(job.result)

    return CriticalCSSJobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        template=job.payload.get("template"),
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=result,
        error=job.error,
    )
