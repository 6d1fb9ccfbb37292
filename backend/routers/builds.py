"""
Builds Router - app generation jobs

Generation runs in a background task; clients poll the job status.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from models import BuildRequest, FixRequest, JobStatus
from routers.deps import PipelineFactory, get_pipeline_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/builds", tags=["builds"])

# Job tracking (in-memory, per process)
jobs = {}

MAX_JOB_LOGS = 150

# Progress reached when a phase starts
PHASE_PROGRESS = {
    "Phase route": 5,
    "Phase target": 10,
    "Phase analyze": 15,
    "Phase plan": 25,
    "Phase build": 40,
    "Phase edit": 40,
    "Phase fix": 70,
    "Phase recover": 85,
}


def append_job_log(job_id: str, message: str) -> None:
    """Append a log entry while keeping an upper bound."""
    job = jobs.get(job_id)
    if not job:
        return
    logs = job.setdefault("logs", [])
    logs.append(message)
    if len(logs) > MAX_JOB_LOGS:
        job["logs"] = logs[-MAX_JOB_LOGS:]
    for marker, progress in PHASE_PROGRESS.items():
        if message.startswith(marker):
            job["progress"] = max(job.get("progress", 0), progress)


def _finish(job_id: str, result: dict) -> None:
    if result["status"] == "success":
        jobs[job_id].update({"status": "completed", "progress": 100, "result": result})
        append_job_log(job_id, f"✓ Job completed: {result.get('app_name')}")
    else:
        error_msg = result.get("error") or "Unknown error"
        jobs[job_id].update({"status": "failed", "progress": 100, "error": error_msg, "result": result})
        append_job_log(job_id, f"✗ Job failed: {error_msg}")


def run_build_task(job_id: str, prompt: str, pipeline_factory: PipelineFactory,
                   app_name: Optional[str] = None) -> None:
    """Background task: run the pipeline for one prompt (build, edit or fix)"""
    try:
        jobs[job_id].update({"status": "processing", "progress": 1})
        pipeline = pipeline_factory(lambda msg: append_job_log(job_id, msg))
        _finish(job_id, pipeline.generate_app(prompt, app_name=app_name))
    except Exception as e:
        logger.exception(f"[Builds] Job {job_id} crashed")
        jobs[job_id].update({"status": "failed", "progress": 100, "error": str(e)})
        append_job_log(job_id, f"Critical Error: {str(e)}")


def run_fix_task(job_id: str, app_name: str, pipeline_factory: PipelineFactory) -> None:
    """Background task: build-fix loop over an existing project"""
    try:
        jobs[job_id].update({"status": "processing", "progress": 1})
        pipeline = pipeline_factory(lambda msg: append_job_log(job_id, msg))
        _finish(job_id, pipeline.fix_existing(pipeline.projects_dir / app_name, app_name))
    except Exception as e:
        logger.exception(f"[Builds] Fix job {job_id} crashed")
        jobs[job_id].update({"status": "failed", "progress": 100, "error": str(e)})
        append_job_log(job_id, f"Critical Error: {str(e)}")


def _new_job() -> str:
    job_id = str(uuid.uuid4())
    jobs[job_id] = {
        "jobId": job_id,
        "status": "pending",
        "progress": 0,
        "logs": [],
        "result": None,
        "error": None,
    }
    return job_id


@router.post("")
async def start_build(
    request: BuildRequest,
    background_tasks: BackgroundTasks,
    pipeline_factory: PipelineFactory = Depends(get_pipeline_factory),
):
    """Start generating an app from a prompt"""
    job_id = _new_job()
    background_tasks.add_task(run_build_task, job_id, request.prompt, pipeline_factory, request.appName)
    return {"success": True, "jobId": job_id, "message": "App generation started"}


@router.post("/fix")
async def start_fix(
    request: FixRequest,
    background_tasks: BackgroundTasks,
    pipeline_factory: PipelineFactory = Depends(get_pipeline_factory),
):
    """Re-run the build-fix loop for a generated app"""
    job_id = _new_job()
    background_tasks.add_task(run_fix_task, job_id, request.appName, pipeline_factory)
    return {"success": True, "jobId": job_id, "message": "Fix started"}


@router.get("/{job_id}", response_model=JobStatus)
async def get_build_status(job_id: str):
    """Get status of a build job"""
    job = jobs.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatus(
        jobId=job_id,
        status=job.get("status"),
        progress=job.get("progress", 0),
        logs=job.get("logs", []),
        result=job.get("result"),
        error=job.get("error"),
    )


__all__ = ["router", "jobs"]
