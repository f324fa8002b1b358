"""
HTTP surface for the custody service.

A thin adapter over CustodyPipeline. Endpoints are plain (sync) functions so
FastAPI runs each request on its worker thread pool: one pipeline run per
request, with ledger submissions serialized per account underneath.
"""

import binascii
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from . import __version__, config
from .auth import validate_address
from .errors import (
    CustodyError,
    InputError,
    InvalidAddress,
    LedgerError,
    RecordNotFound,
    UserExists,
    UserNotFound,
)
from .keys import KeyMaterial
from .logging_config import configure_logging, set_request_id
from .models import (
    BalanceResponse,
    RecordResponse,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    UploadRequest,
    UploadResponse,
)
from .pipeline import CustodyPipeline
from .util import b64d, b64e

logger = logging.getLogger(__name__)


def status_for(error: CustodyError) -> int:
    """HTTP status code for a custody error."""
    if isinstance(error, (UserNotFound, RecordNotFound)):
        return 404
    if isinstance(error, UserExists):
        return 409
    if isinstance(error, InputError):
        return 400
    if isinstance(error, LedgerError):
        return 502
    return 500


def _http_error(error: CustodyError) -> HTTPException:
    return HTTPException(status_for(error), detail=error.to_dict())


def create_app(
    pipeline: Optional[CustodyPipeline] = None,
    custody_key: Optional[KeyMaterial] = None,
) -> FastAPI:
    """
    Build the application. Collaborators not passed in are created from
    config at startup.
    """
    app = FastAPI(title="GenomicDAO Custody Service", version=__version__)
    state = {"pipeline": pipeline, "custody_key": custody_key}

    @app.on_event("startup")
    def _startup():
        if state["pipeline"] is None:
            configure_logging(
                "DEBUG" if config.is_debug() else config.LOG_LEVEL,
                json_format=config.LOG_JSON,
            )
            missing = [name for name, ok in config.validate_config().items() if not ok]
            if missing:
                logger.error("configuration incomplete: %s", ", ".join(missing))
                if config.is_production():
                    raise RuntimeError(f"configuration incomplete: {', '.join(missing)}")
            state["pipeline"] = config.build_pipeline()
        if state["custody_key"] is None:
            state["custody_key"] = config.get_custody_key()

    def _pipeline() -> CustodyPipeline:
        if state["pipeline"] is None:
            raise HTTPException(503, "SERVICE_NOT_READY")
        return state["pipeline"]

    def _custody_key() -> KeyMaterial:
        if state["custody_key"] is None:
            raise HTTPException(503, "SERVICE_NOT_READY")
        return state["custody_key"]

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    def health():
        return {"status": "ok", "env": config.ENV, "version": __version__}

    @app.post("/auth/register", response_model=RegisterResponse)
    def register(req: RegisterRequest):
        try:
            user_id = _pipeline().auth.register(req.address)
        except CustodyError as e:
            raise _http_error(e)
        return RegisterResponse(user_id=user_id)

    @app.post("/upload", response_model=UploadResponse)
    def upload(req: UploadRequest):
        try:
            payload = b64d(req.genomic_data_b64)
        except (binascii.Error, ValueError):
            raise HTTPException(400, detail={
                "stage": "decode",
                "error": "InvalidEncoding",
                "reason": "genomic_data_b64 is not valid base64",
            })

        try:
            result = _pipeline().upload(payload, req.address, _custody_key())
        except CustodyError as e:
            logger.warning("upload failed at %s: %s", e.stage, e.reason)
            raise _http_error(e)
        return UploadResponse(**result.to_dict())

    @app.get("/records/{file_id}", response_model=RecordResponse)
    def get_record(file_id: str):
        key = _custody_key()
        try:
            record = _pipeline().verify(file_id, expected_address=key.address)
            plaintext = _pipeline().retrieve(file_id, key)
        except CustodyError as e:
            raise _http_error(e)
        return RecordResponse(
            file_id=record.file_id,
            owner_id=record.owner_id,
            content_hash="0x" + record.content_hash.hex(),
            signature="0x" + record.signature.hex(),
            signer=key.address,
            genomic_data_b64=b64e(plaintext),
        )

    @app.get("/sessions/{session_id}", response_model=SessionResponse)
    def get_session(session_id: str):
        try:
            session = _pipeline().get_session(session_id)
        except CustodyError as e:
            raise _http_error(e)
        if not session.exists:
            raise HTTPException(404, detail={
                "stage": "get_session",
                "error": "SessionNotFound",
                "reason": f"session {session_id} not found",
            })
        return SessionResponse(**session.to_dict())

    @app.get("/pcsp/balance", response_model=BalanceResponse)
    def pcsp_balance(address: str):
        try:
            if not validate_address(address):
                raise InvalidAddress()
            balance = _pipeline().reward_balance(address)
        except CustodyError as e:
            raise _http_error(e)
        return BalanceResponse(address=address, balance=balance)

    return app


app = create_app()
