import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import FastAPI, Response, Request, Depends, Header, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from devicesync.config import settings
from devicesync.storage import (
    init_db,
    check_db_health,
    get_db,
    insert_messages_in_batches,
    get_messages,
    get_latest_screenshots,
)
from devicesync.logging_utils import setup_logging, RequestLoggingMiddleware, log_sync_data
from devicesync.utils import parse_leading_int, parse_timestamp, utc_now_iso, verify_bearer_token
from devicesync.validation import validate_messages
from devicesync.metrics import record_sync_outcome, get_metrics, get_metrics_content_type
from devicesync.schemas import (
    HealthResponse,
    SyncRequest,
    SyncResponse,
    ErrorResponse,
    StoredMessageResponse,
    MessagesListResponse,
    ScreenshotResponse,
    ScreenshotsListResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error returned to the client as {"error": ...}."""

    def __init__(self, status_code: int, error: Any):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Device Sync API",
    description="Personal data-sync service for messages and screenshots captured on the user's devices",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error})


# =============================================================================
# Dependencies
# =============================================================================

def require_mobile_auth(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests that do not carry the mobile app's bearer token."""
    if not verify_bearer_token(authorization, settings.MOBILE_API_KEY):
        logger.warning(f"Unauthorized request to {request.url.path}")
        log_sync_data(request=request, result="unauthorized")
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


def get_current_user_id() -> str:
    """Owner of all synced data; a single fixed identity."""
    return settings.DEFAULT_USER_ID


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness check - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness check - returns 200 only if:
    1. MOBILE_API_KEY is set (non-empty)
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.MOBILE_API_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="MOBILE_API_KEY not configured")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable or schema not applied")

    return HealthResponse(status="ready")


# =============================================================================
# iMessages Routes
# =============================================================================

@app.post(
    "/api/imessages",
    response_model=SyncResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_mobile_auth)],
    responses={
        400: {"model": ErrorResponse, "description": "Malformed request envelope"},
        401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    }
)
async def sync_imessages(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> SyncResponse:
    """
    Store a batch of messages synced from a mobile device.

    - Validates the envelope (messages, syncTime, deviceId, messageCount)
    - Validates each message on its own; bad records are counted as rejected
    - Idempotent: messages already stored for this user (same guid) are skipped
    """
    logger.info("POST /api/imessages")

    raw_body = await request.body()
    logger.debug(f"Request body size: {len(raw_body)} bytes")

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.warning(f"Invalid JSON: {e}")
        log_sync_data(request=request, result="validation_error")
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    try:
        payload = SyncRequest.model_validate(body)
    except ValidationError as e:
        logger.warning("Invalid request body", extra={"errors": e.json(include_url=False)})
        log_sync_data(request=request, result="validation_error")
        raise APIError(status.HTTP_400_BAD_REQUEST, json.loads(e.json(include_url=False)))

    logger.info(
        f"Received {payload.message_count} iMessages from device {payload.device_id} at {payload.sync_time}"
    )

    if not payload.messages:
        log_sync_data(request=request, result="empty", device_id=payload.device_id)
        return SyncResponse(
            message="No messages to sync",
            message_count=0,
            synced_at=utc_now_iso(),
        )

    outcome = validate_messages(payload.messages)

    inserted_messages = await run_in_threadpool(
        insert_messages_in_batches,
        db,
        outcome.valid,
        payload.device_id,
        payload.sync_time,
        user_id,
    )

    inserted_count = len(inserted_messages)
    rejected_count = len(outcome.rejected)
    skipped_count = len(outcome.valid) - inserted_count

    logger.info(f"Inserted {inserted_count} iMessages")
    logger.info(f"Skipped {skipped_count} duplicate messages")
    logger.info(f"Rejected {rejected_count} invalid messages")
    if inserted_messages:
        logger.info(f"Inserted message IDs: {[row.message_id for row in inserted_messages]}")

    record_sync_outcome(inserted=inserted_count, skipped=skipped_count, rejected=rejected_count)
    log_sync_data(
        request=request,
        result="synced",
        device_id=payload.device_id,
        inserted=inserted_count,
        skipped=skipped_count,
        rejected=rejected_count,
    )

    return SyncResponse(
        message=f"Stored {inserted_count} iMessages",
        message_count=inserted_count,
        rejected_count=rejected_count,
        skipped_count=skipped_count,
        synced_at=utc_now_iso(),
    )


@app.get(
    "/api/imessages",
    response_model=MessagesListResponse,
    dependencies=[Depends(require_mobile_auth)],
    responses={400: {"model": ErrorResponse, "description": "Invalid 'after' timestamp"}},
)
async def list_imessages(
    after: str | None = None,
    contact: str | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> MessagesListResponse:
    """
    List stored messages, oldest first (at most 1000).

    Query Parameters:
        - after: only messages dated at or after this ISO-8601 timestamp
        - contact: only messages with this contact (exact match)
    """
    logger.info(f"GET /api/imessages: after={after}, contact={contact}")

    after_date = None
    if after:
        try:
            after_date = parse_timestamp(after)
        except ValueError:
            raise APIError(status.HTTP_400_BAD_REQUEST, 'Invalid date format for "after" parameter')

    messages = get_messages(db=db, user_id=user_id, after=after_date, contact=contact)

    logger.info(f"Retrieved {len(messages)} iMessages{f' for contact {contact}' if contact else ''}")

    return MessagesListResponse(
        messages=[StoredMessageResponse.model_validate(m) for m in messages],
        count=len(messages),
    )


# =============================================================================
# Screenshots Route
# =============================================================================

@app.get(
    "/api/screenshots/latest",
    response_model=ScreenshotsListResponse,
    responses={400: {"model": ErrorResponse, "description": "Limit out of range"}},
)
async def latest_screenshots(
    limit: str = "1",
    display_id: Annotated[str | None, Query(alias="displayId")] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> ScreenshotsListResponse:
    """
    Return the most recent screenshots, newest first.

    Query Parameters:
        - limit: number of screenshots, 1-100 (default 1)
        - displayId: only screenshots from this display
    """
    logger.info("GET /api/screenshots/latest")

    limit_value = parse_leading_int(limit)

    if limit_value is None or limit_value < 1 or limit_value > 100:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Limit must be between 1 and 100")

    screenshots = get_latest_screenshots(db=db, user_id=user_id, limit=limit_value, display_id=display_id)

    logger.info(f"Returning {len(screenshots)} screenshot(s)")

    return ScreenshotsListResponse(
        count=len(screenshots),
        screenshots=[ScreenshotResponse.model_validate(s) for s in screenshots],
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
