"""
FastAPI routes for statement upload, progress polling and export.
Uploads and results are held in memory only.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse, Response

from core.config import get_settings
from core.exceptions import StatementOCRException
from core.exporters import build_summary, export_to_excel, export_to_tsv
from core.logger import setup_logger
from core.schema import InputDocument, PDF_MEDIA_TYPE, TransactionRecord
from services.payload_service import deduplicate_documents
from services.statement_service import StatementService

logger = setup_logger(__name__)
settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Bank Statement OCR",
    description="Extract transactions from bank statement PDFs and images",
    version="1.0.0"
)

# In-memory job storage
jobs: Dict[str, Dict[str, Any]] = {}

# Service instance
statement_service = StatementService(settings)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "statement_ocr",
        "version": "1.0.0",
        "pdf_backend_loaded": statement_service.backend_provider.is_ready,
    }


@app.get("/favicon.ico")
async def favicon():
    """Return empty response for favicon to avoid 404 errors."""
    return Response(status_code=204)


async def process_documents_background(job_id: str, documents: List[InputDocument]) -> None:
    """
    Background task running the extraction pipeline for one job.

    Args:
        job_id: Unique job identifier
        documents: Uploaded documents in submission order
    """
    def update_progress(message: str) -> None:
        if jobs[job_id]["status"] == "processing":
            jobs[job_id]["message"] = message

    try:
        jobs[job_id]["status"] = "processing"
        transactions = await statement_service.run(documents, update_progress)

        jobs[job_id]["transactions"] = transactions
        jobs[job_id]["status"] = "completed"
        jobs[job_id]["message"] = "Processing completed successfully"
        jobs[job_id]["result"] = {
            "transactions": [txn.model_dump() for txn in transactions],
            "summary": build_summary(transactions).model_dump(),
        }

        logger.info(f"Job {job_id} completed with {len(transactions)} transaction(s)")

    except StatementOCRException as e:
        logger.error(f"Job {job_id} failed: {e.message}")
        jobs[job_id]["status"] = "failed"
        jobs[job_id]["message"] = f"Processing failed: {e.message}"
        jobs[job_id]["error"] = e.message
        jobs[job_id]["error_type"] = type(e).__name__
        jobs[job_id]["error_details"] = e.details

    except Exception as e:
        logger.error(f"Job {job_id} failed with unexpected error: {e}", exc_info=True)
        jobs[job_id]["status"] = "failed"
        jobs[job_id]["message"] = f"Processing failed: {str(e)}"
        jobs[job_id]["error"] = str(e) or "An unknown error occurred."
        jobs[job_id]["error_type"] = type(e).__name__


def validate_media_type(upload: UploadFile) -> str:
    """
    Validate the upload is a PDF or an image.

    Args:
        upload: Uploaded file

    Returns:
        Normalized media type

    Raises:
        HTTPException: If the media type is not supported
    """
    media_type = (upload.content_type or "").split(";")[0].strip().lower()
    if media_type == PDF_MEDIA_TYPE or media_type.startswith("image/"):
        return media_type
    raise HTTPException(
        status_code=400,
        detail=f"Invalid file type: {upload.filename}. Only PDF and image files are supported."
    )


@app.post("/process", status_code=202)
async def process_files(
    background_tasks: BackgroundTasks,
    files: List[UploadFile] = File(...)
):
    """
    Accept statement files and start background extraction.
    Returns immediately with job ID for status polling.

    Args:
        background_tasks: FastAPI background tasks
        files: One or more PDF or image files, in submission order

    Returns:
        202 Accepted with job_id for status polling
    """
    logger.info(f"Received {len(files)} file(s): {[f.filename for f in files]}")

    documents = []
    for upload in files:
        media_type = validate_media_type(upload)
        content = await upload.read()
        if len(content) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"{upload.filename} exceeds the {settings.max_upload_mb} MB upload limit."
            )
        documents.append(InputDocument(
            name=upload.filename or f"upload-{len(documents) + 1}",
            media_type=media_type,
            content=content
        ))

    documents = deduplicate_documents(documents)

    job_id = str(uuid.uuid4())
    jobs[job_id] = {
        "job_id": job_id,
        "status": "queued",
        "message": "Files uploaded, starting processing...",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "documents": [document.name for document in documents],
    }

    background_tasks.add_task(process_documents_background, job_id, documents)

    logger.info(f"Job {job_id} queued for processing")

    return {
        "job_id": job_id,
        "status": "accepted",
        "message": "Processing started. Use job_id to check status."
    }


@app.get("/status/{job_id}")
async def get_job_status(job_id: str):
    """
    Get status of a processing job.

    Args:
        job_id: Job identifier

    Returns:
        Job status information, with transactions and summary once completed
    """
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")

    job = jobs[job_id]

    response = {
        "job_id": job_id,
        "status": job["status"],
        "message": job["message"],
        "created_at": job.get("created_at"),
        "documents": job.get("documents", []),
    }

    if job["status"] == "completed" and "result" in job:
        response["result"] = job["result"]

    if job["status"] == "failed":
        response["error"] = job.get("error")
        response["error_type"] = job.get("error_type")
        if "error_details" in job:
            response["error_details"] = job["error_details"]

    return response


@app.get("/download/{job_id}")
async def download_results(job_id: str, format: str = Query("tsv", pattern="^(tsv|xlsx)$")):
    """
    Download the transactions of a completed job.

    Args:
        job_id: Job identifier
        format: "tsv" or "xlsx"

    Returns:
        Export file response
    """
    job = jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if job["status"] != "completed":
        raise HTTPException(status_code=409, detail=f"Job is {job['status']}, not completed")

    transactions: List[TransactionRecord] = job["transactions"]

    if format == "xlsx":
        try:
            content = export_to_excel(transactions)
        except StatementOCRException as e:
            raise HTTPException(status_code=500, detail=e.message)
        return Response(
            content=content,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="transactions_{job_id}.xlsx"'}
        )

    return PlainTextResponse(
        export_to_tsv(transactions),
        media_type="text/tab-separated-values",
        headers={"Content-Disposition": f'attachment; filename="transactions_{job_id}.tsv"'}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
