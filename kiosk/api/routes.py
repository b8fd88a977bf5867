"""
Kiosk HTTP endpoints.

GET  /balance                      - current balance and earnings
POST /balance/reset                - zero the balance
GET  /sessions                     - open an upload session
GET  /sessions/by-token/{token}    - session owning a token
GET  /sessions/{session_id}        - session snapshot
POST /sessions/{session_id}/upload - push the session's document
POST /confirm-payment              - charge a print or copy job
GET  /pricing/quote                - price of a job
GET  /serial/status                - coin acceptor connectivity
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from kiosk.application.kiosk_facade import KioskFacade
from kiosk.application.session_store import IncomingFile
from kiosk.core.exceptions import ConflictError, InvalidModeError, ValidationError
from kiosk.core.value_objects import ColorMode, PrintMode, UploadErrorCode
from kiosk.loggers import logger


router = APIRouter()


def get_facade(request: Request) -> KioskFacade:
    return request.app.state.facade


# ── Balance ──────────────────────────────────────────────────────────────
@router.get("/balance")
def get_balance(facade: KioskFacade = Depends(get_facade)):
    return facade.get_balance()


@router.post("/balance/reset")
async def reset_balance(facade: KioskFacade = Depends(get_facade)):
    logger.info("Balance reset requested")
    return await facade.reset_balance()


@router.post("/confirm-payment")
async def confirm_payment(
    payload: Optional[dict[str, Any]] = Body(None),
    facade: KioskFacade = Depends(get_facade),
):
    payload = payload or {}
    return await facade.confirm_payment(
        payload.get("amount"),
        payload.get("mode"),
        session_id=payload.get("sessionId") or None,
        filename=payload.get("filename") or None,
    )


@router.get("/pricing/quote")
def pricing_quote(
    mode: str = Query("print"),
    color_mode: str = Query("grayscale", alias="colorMode"),
    copies: float = Query(1),
    facade: KioskFacade = Depends(get_facade),
):
    try:
        print_mode = PrintMode(mode)
    except ValueError:
        raise InvalidModeError("Invalid mode") from None
    try:
        colors = ColorMode(color_mode)
    except ValueError:
        raise ValidationError("Invalid color mode", code="INVALID_COLOR_MODE") from None
    return facade.quote(print_mode, colors, copies)


# ── Wireless upload sessions ─────────────────────────────────────────────
@router.get("/sessions", status_code=201)
def create_session(request: Request, facade: KioskFacade = Depends(get_facade)):
    return facade.create_session(str(request.base_url))


# Registered before "/sessions/{session_id}" so "by-token" is not taken as an id
@router.get("/sessions/by-token/{token}")
def get_session_by_token(token: str, facade: KioskFacade = Depends(get_facade)):
    return facade.get_session_by_token(token)


@router.get("/sessions/{session_id}")
def get_session(session_id: str, facade: KioskFacade = Depends(get_facade)):
    return facade.get_session(session_id)


@router.post("/sessions/{session_id}/upload")
async def upload_document(
    session_id: str,
    token: str = Query(""),
    file: Optional[UploadFile] = File(None),
    facade: KioskFacade = Depends(get_facade),
):
    if file is None or not file.filename:
        logger.warning(f"Upload to session {session_id} failed: no file provided")
        return JSONResponse(
            status_code=400,
            content={"code": "no_file", "error": "No file provided."},
        )

    # One byte past the limit is enough to reject the file
    data = await file.read(facade.sessions.max_file_size + 1)
    await file.close()
    incoming = IncomingFile(
        filename=file.filename,
        content_type=file.content_type or "",
        data=data,
        size=file.size,
    )

    result = await facade.upload(session_id, token, incoming)
    if result.success:
        return result.to_dict()

    message = result.error_message or "Upload failed."
    if result.error_code is UploadErrorCode.ALREADY_UPLOADED:
        raise ConflictError(message)
    raise ValidationError(
        message, code=result.error_code.value if result.error_code else "UPLOAD_FAILED"
    )


# ── Devices ──────────────────────────────────────────────────────────────
@router.get("/serial/status")
def serial_status(facade: KioskFacade = Depends(get_facade)):
    return facade.serial_status().to_dict()
