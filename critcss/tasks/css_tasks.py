"""Celery tasks for critical CSS extraction."""

from __future__ import annotations

from critcss.core.logging import extraction_context, get_logger
from critcss.models.critical_css import CriticalCSSRequest
from critcss.services import job_store
from critcss.services.critical_css import critical_css_extractor
from critcss.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="critical_css.generate")
def generate_critical_css(job_id: str, payload: dict) -> dict:
    """Partition the submitted stylesheets and store the result on the job."""

    with extraction_context(job_id=job_id):
        logger.info("critical_css_task_started")
        try:
            job_store.mark_processing(job_id)
            request = CriticalCSSRequest.model_validate(payload)
            result = critical_css_extractor.extract(request)
        except Exception as exc:
            logger.exception("critical_css_task_failed", error=str(exc))
            job_store.mark_failed(job_id, str(exc))
            raise

        result_payload = result.model_dump(mode="json")
        if result.error:
            logger.warning("critical_css_task_rejected", error=result.error)
            job_store.mark_failed(job_id, result.error)
        else:
            job_store.mark_completed(job_id, result_payload)
            logger.info("critical_css_task_completed", warnings=len(result.warnings))
        return result_payload
