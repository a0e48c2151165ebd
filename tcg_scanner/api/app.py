"""FastAPI application exposing scan, commit and image lookup."""

import contextlib
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ..core.types import CommitRequest
from ..pipeline import ScanOrchestrator
from ..utils.config import ensure_storage_dirs, settings
from ..utils.error_handler import (
    CardScannerError,
    ErrorCode,
    QuotaExceededError,
    ValidationError,
    user_message,
)
from ..utils.log import get_logger
from ..utils.validation import decode_image, optional_text, require_fields, validate_game
from .schemas import CommitBody, ImageLookupBody, ScanRequest

logger = get_logger(__name__)

USER_HEADER = "X-User-Id"
REMAINING_HEADER = "X-RateLimit-Remaining"


def get_user_id(request: Request) -> str:
    """Caller identity: the auth layer's header, else the originating client address."""
    user_id = request.headers.get(USER_HEADER)
    if user_id and user_id.strip():
        return user_id.strip()

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def _error_body(error: CardScannerError) -> dict:
    return {"error": error.message, "errorCode": error.code.value, "retryable": error.retryable}


def create_app(orchestrator: Optional[ScanOrchestrator] = None) -> FastAPI:
    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting card scanner API")
        if orchestrator is None:
            ensure_storage_dirs()
            app.state.orchestrator = ScanOrchestrator()
        else:
            app.state.orchestrator = orchestrator
        app.state.orchestrator.scan_cache.purge_expired()
        app.state.orchestrator.price_cache.purge_expired()
        yield
        logger.info("Shutting down card scanner API")

    app = FastAPI(title="TCG Scanner", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", REMAINING_HEADER],
    )

    @app.exception_handler(QuotaExceededError)
    async def quota_exceeded(request: Request, exc: QuotaExceededError):
        logger.info("Scan quota exceeded", user_id=exc.details.get("user_id"), retry_after_ms=exc.retry_after_ms)
        return JSONResponse(
            status_code=429,
            content={
                "error": exc.message,
                "errorCode": exc.code.value,
                "retryable": True,
                "remainingScans": 0,
                "retryAfter": exc.retry_after_s,
            },
            headers={"Retry-After": str(exc.retry_after_s), REMAINING_HEADER: "0"},
        )

    @app.exception_handler(ValidationError)
    async def invalid_request(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def malformed_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": user_message(ErrorCode.INVALID_REQUEST),
                "errorCode": ErrorCode.INVALID_REQUEST.value,
                "retryable": False,
            },
        )

    @app.exception_handler(CardScannerError)
    async def internal_failure(request: Request, exc: CardScannerError):
        logger.error(
            "Request failed",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        body = _error_body(exc)
        body["error"] = user_message(exc.code) if exc.code == ErrorCode.STORAGE_FAILURE else "Internal error"
        return JSONResponse(status_code=500, content=body)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/scan")
    async def scan(body: ScanRequest, request: Request, response: Response):
        result = await request.app.state.orchestrator.scan(
            get_user_id(request), body.image_data, body.game_hint
        )
        if result.remaining_scans is not None:
            response.headers[REMAINING_HEADER] = str(result.remaining_scans)
        return result.to_payload()

    @app.post("/commit")
    @app.post("/save-scan-image")
    async def commit(body: CommitBody, request: Request):
        require_fields(body.model_dump(by_alias=True), ["imageBase64", "cardName"])
        game = validate_game(body.game, required=True)
        commit_request = CommitRequest(
            image=decode_image(body.image_base64, settings.MAX_IMAGE_BYTES, field_name="imageBase64"),
            game=game.value,
            card_name=body.card_name.strip(),
            set_name=optional_text(body.set_name),
            card_number=optional_text(body.card_number),
            product_id=optional_text(body.product_id),
        )
        result = await request.app.state.orchestrator.commit(commit_request)
        return {"imageUrl": result.image_url, "title": result.title, "cached": result.cached}

    @app.post("/image")
    @app.post("/get-card-image")
    async def image_lookup(body: ImageLookupBody, request: Request):
        found = await request.app.state.orchestrator.lookup_image(body.card_key or "")
        return {"imageUrl": found.image_url, "exists": found.exists}

    app.mount(
        "/card-images",
        StaticFiles(directory=settings.OBJECT_STORE_DIR, check_dir=False),
        name="card-images",
    )
    return app


app = create_app()
