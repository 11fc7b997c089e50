from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .configuration import CORS_METHODS, get_settings
from .database import DocumentStore, StoreError, create_store, serialize_documents
from .models import (
    ACCEPTED_HISTORY_COLLECTION,
    APPROVED_COLLECTION,
    PENDING_COLLECTION,
    REJECTED_COLLECTION,
    REJECTED_HISTORY_COLLECTION,
    FacultyCheckResponse,
    HealthResponse,
    MessageResponse,
    StatusUpdate,
)
from .workflow import InvalidStatus, RequestNotFound, RequestWorkflow

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

store = create_store(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # An unreachable store is not fatal; requests fail with 500 until it recovers.
    try:
        await store.open()
    except StoreError as exc:
        logger.error(f"Document store connection error: {exc}")
    try:
        await store.ensure_indexes()
    except StoreError as exc:
        logger.warning(f"Failed to create indexes for faculty numbers: {exc}")

    logger.info(f"ReIDentify Backend Server running on http://localhost:{settings.port}")
    logger.info(f"Health check available at http://localhost:{settings.port}/api/health")
    yield
    await store.close()


app = FastAPI(title="ReIDentify Backend API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=CORS_METHODS,
    allow_headers=["*"],
)


def get_store() -> DocumentStore:
    return store


def get_workflow(document_store: DocumentStore = Depends(get_store)) -> RequestWorkflow:
    return RequestWorkflow(
        document_store,
        reject_unknown_status=settings.reject_unknown_status,
        faculty_check_timeout_ms=settings.faculty_check_timeout_ms,
    )


@app.exception_handler(RequestNotFound)
async def request_not_found_handler(request: Request, exc: RequestNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"message": "Request not found"})


@app.exception_handler(InvalidStatus)
async def invalid_status_handler(request: Request, exc: InvalidStatus) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Error handling {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Starlette re-raises after this response is sent; the server logs the traceback.
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


@app.patch("/api/requests/{request_id}/status", response_model=MessageResponse)
async def update_request_status(
    request_id: str,
    update: StatusUpdate,
    workflow: RequestWorkflow = Depends(get_workflow),
) -> MessageResponse:
    """
    Apply a review decision to a pending request.

    The body must be ``{"status": "<string>"}``; a missing or non-string
    ``status`` is rejected with 422 before the store is touched.
    """
    message = await workflow.set_status(request_id, update.status)
    return MessageResponse(message=message)


async def _list(workflow: RequestWorkflow, collection: str) -> List[Dict[str, Any]]:
    return serialize_documents(await workflow.list_collection(collection))


@app.get("/api/pending")
async def list_pending(workflow: RequestWorkflow = Depends(get_workflow)) -> List[Dict[str, Any]]:
    return await _list(workflow, PENDING_COLLECTION)


@app.get("/api/approved")
async def list_approved(workflow: RequestWorkflow = Depends(get_workflow)) -> List[Dict[str, Any]]:
    return await _list(workflow, APPROVED_COLLECTION)


@app.get("/api/rejected")
async def list_rejected(workflow: RequestWorkflow = Depends(get_workflow)) -> List[Dict[str, Any]]:
    return await _list(workflow, REJECTED_COLLECTION)


@app.get("/api/check-faculty/{faculty_id}", response_model=FacultyCheckResponse)
async def check_faculty(faculty_id: str, workflow: RequestWorkflow = Depends(get_workflow)) -> FacultyCheckResponse:
    return FacultyCheckResponse(valid=await workflow.check_faculty(faculty_id))


@app.get("/api/acchistoryids")
async def list_accepted_history(workflow: RequestWorkflow = Depends(get_workflow)) -> List[Dict[str, Any]]:
    return await _list(workflow, ACCEPTED_HISTORY_COLLECTION)


@app.get("/api/rejhistoryids")
async def list_rejected_history(workflow: RequestWorkflow = Depends(get_workflow)) -> List[Dict[str, Any]]:
    return await _list(workflow, REJECTED_HISTORY_COLLECTION)


@app.get("/api/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return HealthResponse(status="OK", message="ReIDentify Backend API is running", timestamp=timestamp)
