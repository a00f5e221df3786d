"""FastAPI application exposing the thesis lifecycle under ``/api``.

Errors raised by the core are returned as ``{"error": message}`` with the
status they carry; anything else is logged and reduced to a generic 500.

Run with:
    uvicorn thesisflow.api:create_app --factory
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from thesisflow.config import Config, setup_logging
from thesisflow.conclusion import MSG_MISSING_THESIS_FILE
from thesisflow.errors import ThesisFlowError, ValidationFailedError
from thesisflow.runtime import ThesisRuntime
from thesisflow.types import StudentContext
from thesisflow.uploads import SubmittedFiles, UploadedFile, cleanup_uploads

logger = logging.getLogger(__name__)

JSON_FIELDS = ("coSupervisors", "sdgs", "keywords", "embargo")
TEXT_FIELDS = ("title", "titleEng", "abstract", "abstractEng", "language", "licenseId")
FILE_FIELDS = (("thesisFile", "thesis_file"), ("thesisResume", "thesis_resume"), ("additionalZip", "additional_zip"))
REMOVE_FLAGS = ("removeThesisFile", "removeThesisResume", "removeAdditionalZip")

router = APIRouter(prefix="/api")


def parse_json_field(name: str, value: Any) -> Any:
    """Decode a JSON-encoded multipart field."""
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None
    try:
        return json.loads(value)
    except ValueError:
        raise ValidationFailedError(f"Invalid JSON in field '{name}'") from None


def _parse_flag(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def form_to_payload(form: FormData, include_flags: bool = False) -> Dict[str, Any]:
    """Build the request payload from the multipart fields that were sent."""
    payload: Dict[str, Any] = {}
    for name in TEXT_FIELDS:
        if name in form and not isinstance(form[name], UploadFile):
            payload[name] = form[name]
    for name in JSON_FIELDS:
        if name in form:
            payload[name] = parse_json_field(name, form[name])
    if include_flags:
        for name in REMOVE_FLAGS:
            if name in form:
                payload[name] = _parse_flag(form[name])
    return payload


def _save_upload(runtime: ThesisRuntime, form: FormData, name: str) -> Optional[UploadedFile]:
    upload = form.get(name)
    if not isinstance(upload, UploadFile) or not upload.filename:
        return None
    return runtime.uploads.save_temp(upload.file, upload.filename, upload.content_type)


def form_to_files(runtime: ThesisRuntime, form: FormData) -> SubmittedFiles:
    """Save the uploaded parts to temporary files; nothing is left behind on failure."""
    saved: Dict[str, Optional[UploadedFile]] = {}
    try:
        for name, slot in FILE_FIELDS:
            saved[slot] = _save_upload(runtime, form, name)
    except Exception:
        cleanup_uploads(*saved.values())
        raise
    return SubmittedFiles(**saved)


def _runtime(request: Request) -> ThesisRuntime:
    return request.app.state.runtime


def _context_or_cleanup(runtime: ThesisRuntime, files: SubmittedFiles) -> StudentContext:
    try:
        return runtime.logged_student_context()
    except Exception:
        cleanup_uploads(*files.all())
        raise


async def _read_multipart(request: Request, include_flags: bool = False):
    runtime = _runtime(request)
    form = await request.form()
    try:
        files = await run_in_threadpool(form_to_files, runtime, form)
        try:
            payload = form_to_payload(form, include_flags=include_flags)
        except Exception:
            cleanup_uploads(*files.all())
            raise
    finally:
        await form.close()
    return runtime, payload, files


@router.put("/test/thesis-application")
def update_thesis_application_status(request: Request, payload: Dict[str, Any] = Body(...)):
    return _runtime(request).transition_application(payload)


@router.put("/test/thesis-conclusion")
def update_thesis_conclusion_status(request: Request, payload: Dict[str, Any] = Body(...)):
    return _runtime(request).transition_conclusion(payload)


@router.post("/thesis-conclusion")
async def send_thesis_conclusion_request(request: Request):
    runtime, payload, files = await _read_multipart(request)
    context = _context_or_cleanup(runtime, files)
    return await run_in_threadpool(runtime.submit_conclusion_request, context, payload, files)


@router.post("/thesis-conclusion/upload-final-thesis")
async def upload_final_thesis(request: Request):
    runtime, _, files = await _read_multipart(request)
    if files.thesis_file is None:
        cleanup_uploads(*files.all())
        raise ValidationFailedError(MSG_MISSING_THESIS_FILE)
    context = _context_or_cleanup(runtime, files)
    return await run_in_threadpool(runtime.upload_final_thesis, context, files)


@router.get("/thesis-conclusion/deadlines")
def get_session_deadlines(request: Request):
    runtime = _runtime(request)
    return runtime.resolve_deadlines(runtime.logged_student_context())


@router.get("/thesis-conclusion/draft")
def get_thesis_conclusion_draft(request: Request):
    runtime = _runtime(request)
    return runtime.get_conclusion_draft(runtime.logged_student_context())


@router.post("/thesis-conclusion/draft")
async def save_thesis_conclusion_draft(request: Request):
    runtime, payload, files = await _read_multipart(request, include_flags=True)
    context = _context_or_cleanup(runtime, files)
    return await run_in_threadpool(runtime.save_conclusion_draft, context, payload, files)


@router.get("/thesis/status-history")
def get_status_history(request: Request):
    runtime = _runtime(request)
    return runtime.status_history(runtime.logged_student_context())


async def thesisflow_error_handler(request: Request, exc: ThesisFlowError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request payload"})


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(runtime: Optional[ThesisRuntime] = None, config: Optional[Config] = None) -> FastAPI:
    """Build the application around ``runtime`` (created from config when omitted)."""
    if runtime is None:
        config = config or Config.from_env()
        setup_logging(config.log_level)
        runtime = ThesisRuntime(config)
        runtime.init_schema()

    app = FastAPI(title="thesisflow")
    app.state.runtime = runtime
    app.include_router(router)
    app.add_exception_handler(ThesisFlowError, thesisflow_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    return app


__all__ = [
    "router",
    "create_app",
    "parse_json_field",
    "form_to_payload",
]
