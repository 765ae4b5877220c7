"""
FastAPI service for claim issuance.

Endpoints:
    POST /generate-claim-tx   reserve an allocation, return its transaction
    POST /confirm-claim       mark the allocation consumed
    GET  /health              entry counts and wallet configuration
"""

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.exceptions import (
    AlreadyClaimedError,
    ClaimDropError,
    InvalidIdentityError,
    IssuanceFailedError,
    NotEligibleError,
    NotReservedError,
)
from ..protocol.claims import ClaimIssuanceProtocol
from .schemas import (
    ClaimRequest,
    ClaimTxResponse,
    ErrorResponse,
    HealthResponse,
    SuccessResponse,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[ClaimDropError], int] = {
    InvalidIdentityError: 400,
    NotEligibleError: 403,
    AlreadyClaimedError: 403,
    NotReservedError: 403,
    IssuanceFailedError: 500,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def status_for(exc: ClaimDropError) -> int:
    for exc_type, status in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ClaimDropError)
    async def handle_claim_error(request: Request, exc: ClaimDropError):
        status = status_for(exc)
        if status >= 500:
            code = IssuanceFailedError.code
            logger.error(f"{request.url.path}: {exc.message}")
        else:
            code = exc.code
            logger.info(f"{request.url.path}: rejected, {exc.message}")
        return JSONResponse(status_code=status, content={"error": code, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": InvalidIdentityError.code, "message": "userAddress is required"},
        )


def create_app(
    protocol: ClaimIssuanceProtocol,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """
    Build the HTTP application around an existing protocol instance.

    Handlers are plain functions so FastAPI runs them on its worker threads;
    the store's lock is what serializes claims for the same wallet.
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        protocol.close()

    app = FastAPI(
        title="claimdrop",
        version=__version__,
        description="Single-use airdrop claim issuance",
        lifespan=lifespan,
    )
    app.state.protocol = protocol

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.post("/generate-claim-tx", response_model=ClaimTxResponse, responses=ERROR_RESPONSES)
    def generate_claim_tx(body: ClaimRequest) -> ClaimTxResponse:
        artifact = protocol.request_claim(body.userAddress)
        return ClaimTxResponse(tx=artifact.tx, amount=float(artifact.amount))

    @app.post("/confirm-claim", response_model=SuccessResponse, responses=ERROR_RESPONSES)
    def confirm_claim(body: ClaimRequest) -> SuccessResponse:
        protocol.confirm_claim(body.userAddress)
        return SuccessResponse()

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(**protocol.health())

    return app
