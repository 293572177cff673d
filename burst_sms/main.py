import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Callable

from fastapi import FastAPI, Response, Request, Depends, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from burst_sms.config import get_settings
from burst_sms.credentials import ApiKeyProvider
from burst_sms.dispatcher import dispatch_burst
from burst_sms.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GatewayTransportError,
    StoreError,
)
from burst_sms.gateway import client_from_settings
from burst_sms.inbound import process_inbound
from burst_sms.logging_utils import setup_logging, RequestLoggingMiddleware, attach_log_data
from burst_sms.metrics import get_metrics, get_metrics_content_type, record_burst_run
from burst_sms.schemas import (
    BurstCounts,
    BurstRequest,
    BurstResponse,
    ErrorResponse,
    GroupMmsRequest,
    HealthResponse,
    InboundAck,
    SendRequest,
    SendResponse,
)
from burst_sms.storage import init_db, check_db_health, get_db
from burst_sms.utils import extract_bearer_token, verify_bearer_token


# Setup structured JSON logging
setup_logging(get_settings().LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Burst SMS API",
    description="Outbound SMS bursts and inbound auto-replies over Telnyx",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies & error mapping
# =============================================================================

@lru_cache()
def get_key_provider() -> ApiKeyProvider:
    """One provider per process so the Secrets Manager cache is shared."""
    return ApiKeyProvider(get_settings())


def get_gateway_factory() -> Callable[[], Any]:
    """
    Returns a zero-argument callable that builds the gateway client.
    Building is deferred so inbound events that never reply do not need
    gateway credentials.
    """
    settings = get_settings()
    provider = get_key_provider()
    return lambda: client_from_settings(settings, provider)


def require_internal_auth(request: Request) -> None:
    """Bearer-token check for internal endpoints."""
    verify_bearer_token(
        extract_bearer_token(request.headers),
        get_settings().INTERNAL_GATEWAY_TOKEN,
    )


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


class InvalidBody(Exception):
    pass


async def read_json_body(request: Request) -> dict:
    """Parse the request body as a JSON object. An empty body is {}."""
    raw_body = await request.body()
    if not raw_body:
        return {}
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise InvalidBody(f"Invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise InvalidBody("Request body must be a JSON object")
    return body


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. INTERNAL_GATEWAY_TOKEN is set
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not get_settings().INTERNAL_GATEWAY_TOKEN:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="INTERNAL_GATEWAY_TOKEN not configured")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable or schema not applied")

    return HealthResponse(status="ready")


# =============================================================================
# Burst Route
# =============================================================================

@app.post(
    "/sendBurstSMS",
    response_model=BurstResponse,
    dependencies=[Depends(require_internal_auth)],
    responses={
        400: {"model": ErrorResponse, "description": "Missing org_id"},
        401: {"model": ErrorResponse, "description": "Invalid bearer token"},
        500: {"model": ErrorResponse, "description": "Misconfigured or store query failed"},
    },
)
async def send_burst(
    request: Request,
    db: Session = Depends(get_db),
    gateway_factory: Callable[[], Any] = Depends(get_gateway_factory),
):
    """
    Send every queued outbound text for an organization.

    Body: {"org_id": "..."}
    Returns counts of processed/sent/failed messages. Individual send
    failures are recorded on their rows and do not fail the request.
    """
    try:
        burst = BurstRequest.model_validate(await read_json_body(request))
    except (InvalidBody, ValidationError) as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))

    if not burst.org_id:
        logger.warning("Missing org_id")
        return error_response(status.HTTP_400_BAD_REQUEST, "Missing required field: org_id")

    attach_log_data(request, org_id=burst.org_id)

    try:
        gateway = await run_in_threadpool(gateway_factory)
    except ConfigurationError as e:
        logger.error(f"Burst handler misconfigured: {e}")
        record_burst_run("error")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Burst handler misconfigured (missing env)")

    try:
        result = await run_in_threadpool(dispatch_burst, db, burst.org_id, gateway)
    except StoreError as e:
        logger.error(f"Message store query failed for org {burst.org_id}: {e}")
        record_burst_run("error")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Message store query failed: {e}")

    attach_log_data(request, **result.to_dict())
    return BurstResponse(data=BurstCounts(**result.to_dict()))


# =============================================================================
# Single Send Routes
# =============================================================================

async def _send(request: Request, gateway_factory: Callable[[], Any], mms: bool):
    try:
        send = SendRequest.model_validate(await read_json_body(request))
    except (InvalidBody, ValidationError) as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))

    if not send.has_required_fields():
        return error_response(status.HTTP_400_BAD_REQUEST, "Missing required fields: to, from, text")
    if not mms and send.is_mms:
        return error_response(status.HTTP_400_BAD_REQUEST, "MMS payload not allowed on /sendSMS (remove mediaUrls)")
    if mms and not send.is_mms:
        return error_response(status.HTTP_400_BAD_REQUEST, "mediaUrls[] required for /sendMMS")

    gateway = await run_in_threadpool(gateway_factory)

    try:
        resp = await run_in_threadpool(
            gateway.send,
            to=send.to,
            from_=send.from_number,
            text=send.text,
            media_urls=send.media_urls if mms else None,
        )
    except GatewayTransportError as e:
        return error_response(e.status_code or status.HTTP_502_BAD_GATEWAY, str(e))

    if not resp.ok:
        return error_response(resp.status_code or status.HTTP_502_BAD_GATEWAY, resp.error or "Unknown error")
    return SendResponse(data=resp.data)


@app.post(
    "/sendSMS",
    response_model=SendResponse,
    dependencies=[Depends(require_internal_auth)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def send_sms(request: Request, gateway_factory: Callable[[], Any] = Depends(get_gateway_factory)):
    """Send one SMS: {"to", "from", "text"}. mediaUrls is rejected here."""
    return await _send(request, gateway_factory, mms=False)


@app.post(
    "/sendMMS",
    response_model=SendResponse,
    dependencies=[Depends(require_internal_auth)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def send_mms(request: Request, gateway_factory: Callable[[], Any] = Depends(get_gateway_factory)):
    """Send one MMS: {"to", "from", "text", "mediaUrls": [...]}."""
    return await _send(request, gateway_factory, mms=True)


@app.post(
    "/sendGroupMMS",
    response_model=SendResponse,
    dependencies=[Depends(require_internal_auth)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def send_group_mms(request: Request, gateway_factory: Callable[[], Any] = Depends(get_gateway_factory)):
    """One group MMS to up to 8 recipients; one outcome for the whole call."""
    try:
        group = GroupMmsRequest.model_validate(await read_json_body(request))
    except (InvalidBody, ValidationError) as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))

    gateway = await run_in_threadpool(gateway_factory)

    try:
        resp = await run_in_threadpool(
            gateway.send_group_mms,
            to=group.to,
            from_=group.from_number,
            text=group.text,
            media_urls=group.media_urls,
        )
    except GatewayTransportError as e:
        return error_response(e.status_code or status.HTTP_502_BAD_GATEWAY, str(e))

    if not resp.ok:
        return error_response(resp.status_code or status.HTTP_502_BAD_GATEWAY, resp.error or "Unknown error")
    return SendResponse(data=resp.data)


# =============================================================================
# Inbound Webhook Route
# =============================================================================

INTERNAL_ERROR = {"error": "Internal error"}


@app.post("/inbound-burst", response_model=InboundAck)
async def inbound_burst(
    request: Request,
    db: Session = Depends(get_db),
    gateway_factory: Callable[[], Any] = Depends(get_gateway_factory),
):
    """
    Telnyx webhook for replies to burst texts.

    Always acknowledges with {"received": true} once the body parses;
    failures inside are logged, and only internal faults return 500
    (with no detail, since the body is external input).
    """
    raw_body = await request.body()
    if not raw_body:
        logger.warning("Empty body")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Empty body"})

    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError:
        logger.warning("Webhook body is not valid JSON")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid JSON"})

    try:
        outcome = await run_in_threadpool(process_inbound, db, event, gateway_factory)
    except Exception:
        logger.exception("Inbound webhook handler error")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=INTERNAL_ERROR)

    attach_log_data(request, outcome=outcome.value)
    return InboundAck()


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
