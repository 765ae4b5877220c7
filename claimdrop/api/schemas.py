"""Request and response bodies for the claim HTTP API.

Field names follow the wallet frontend (camelCase).
"""

from pydantic import BaseModel


class ClaimRequest(BaseModel):
    userAddress: str


class ClaimTxResponse(BaseModel):
    tx: str
    amount: float


class SuccessResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str = "ok"
    available: int
    reserved: int
    consumed: int
    payer: str
    mint: str | None = None


class ErrorResponse(BaseModel):
    error: str
    message: str
