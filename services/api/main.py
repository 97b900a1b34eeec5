import logging
import secrets
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.api.deps.auth import get_current_user_id
from services.api.deps.storage import get_storage_dep
from shared.config import get_settings
from shared.logging import configure_logging
from shared.schemas import (
    RefreshUrlRequest,
    RefreshUrlResponse,
    SignedUrlRequest,
    StoredFileResponse,
    UploadRequest,
)
from shared.storage import (
    InvalidStorageInput,
    S3Storage,
    extract_key_from_s3_url,
    get_s3_key,
    get_s3_url,
    needs_refresh,
    save_buffer_to_s3,
)


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI()


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or secrets.token_hex(8)
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def api_response(request: Request, data: Any = None, code: int = 0, message: str = "ok") -> JSONResponse:
    payload = {"code": code, "message": message, "data": data, "request_id": request.state.request_id}
    return JSONResponse(payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return api_response(request, data=None, code=exc.status_code, message=exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return api_response(request, data={"errors": exc.errors()}, code=400, message="validation_error")


@app.exception_handler(InvalidStorageInput)
async def invalid_storage_input_handler(request: Request, exc: InvalidStorageInput):
    return api_response(request, data=None, code=400, message=str(exc))


@app.exception_handler(ClientError)
@app.exception_handler(BotoCoreError)
async def storage_backend_error_handler(request: Request, exc: Exception):
    logger.error("storage backend error: %s", exc, extra={"request_id": request.state.request_id})
    return api_response(request, data=None, code=502, message="storage_error")


@app.get("/healthz")
def healthz(request: Request):
    return api_response(request, data="ok")


@app.post("/api/v1/files")
def upload_file(
    request: Request,
    base_path: str = Query(..., min_length=1),
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    storage: S3Storage = Depends(get_storage_dep),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="missing file name")
    body = UploadRequest(
        user_id=user_id,
        buffer=file.file.read(),
        file_name=file.filename,
        base_path=base_path,
        content_type=file.content_type,
    )
    url = save_buffer_to_s3(body, storage=storage)
    key = get_s3_key(base_path, user_id, file.filename)
    return api_response(request, data=StoredFileResponse(key=key, url=url).model_dump())


@app.get("/api/v1/files/url")
def file_url(
    request: Request,
    base_path: str = Query(..., min_length=1),
    file_name: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    storage: S3Storage = Depends(get_storage_dep),
):
    body = SignedUrlRequest(user_id=user_id, file_name=file_name, base_path=base_path)
    url = get_s3_url(body, storage=storage)
    key = get_s3_key(base_path, user_id, file_name)
    return api_response(request, data=StoredFileResponse(key=key, url=url).model_dump())


@app.post("/api/v1/files/refresh")
def refresh_file_url(
    request: Request,
    body: RefreshUrlRequest,
    user_id: str = Depends(get_current_user_id),
    storage: S3Storage = Depends(get_storage_dep),
):
    key = extract_key_from_s3_url(body.url)
    segments = key.split("/")
    if len(segments) < 3 or segments[1] != user_id:
        raise HTTPException(status_code=403, detail="invalid object key")
    threshold = body.threshold_seconds
    if threshold is None:
        threshold = get_settings().signed_url_refresh_threshold_seconds
    refreshed = needs_refresh(body.url, threshold)
    url = storage.sign(key) if refreshed else body.url
    return api_response(request, data=RefreshUrlResponse(url=url, refreshed=refreshed).model_dump())
