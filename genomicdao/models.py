from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    address: str


class RegisterResponse(BaseModel):
    user_id: int


class UploadRequest(BaseModel):
    address: str
    genomic_data_b64: str = Field(..., description="Raw marker stream, base64; length must be a multiple of 8")


class UploadResponse(BaseModel):
    session_id: str
    file_id: str
    doc_id: str
    risk_level: int
    content_hash: str
    status: str
    token_id: Optional[int] = None
    reward_amount: Optional[int] = None
    message: str


class RecordResponse(BaseModel):
    file_id: str
    owner_id: int
    content_hash: str
    signature: str
    signer: str
    genomic_data_b64: str


class SessionResponse(BaseModel):
    session_id: str
    owner: str
    proof: str
    confirmed: bool


class BalanceResponse(BaseModel):
    address: str
    balance: int

