"""WeCom kf callback endpoints: URL verification and message notifications."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse

from kf_relay.dependencies import get_message_crypt, get_orchestrator
from kf_relay.logging_config import get_logger
from kf_relay.models import InboundEnvelope
from kf_relay.services.callback_service import CallbackOrchestrator
from kf_relay.services.crypto_service import WeComMessageCrypt, extract_encrypt

logger = get_logger("callback")

router = APIRouter(tags=["callback"])


@router.get("/callback", response_class=PlainTextResponse)
async def verify_callback_url(
    msg_signature: Optional[str] = None,
    timestamp: Optional[str] = None,
    nonce: Optional[str] = None,
    echostr: Optional[str] = None,
    crypt: WeComMessageCrypt = Depends(get_message_crypt),
):
    """Answer the platform's URL verification with the decrypted echostr."""
    if not (msg_signature and timestamp and nonce and echostr):
        return PlainTextResponse("missing required parameters", status_code=400)

    result = await crypt.verify_url(msg_signature, timestamp, nonce, echostr)
    if not result.ok:
        logger.warning(
            "Callback URL verification rejected",
            extra={"context": {"code": result.error_code, "error": result.error}},
        )
        return PlainTextResponse(f"verification failed: {result.error_code}", status_code=400)
    return PlainTextResponse(result.unwrap_or(""))


@router.post("/callback", response_class=PlainTextResponse)
async def receive_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    msg_signature: Optional[str] = None,
    timestamp: Optional[str] = None,
    nonce: Optional[str] = None,
    orchestrator: CallbackOrchestrator = Depends(get_orchestrator),
):
    """Acknowledge a notification at once and process it in the background."""
    if not (msg_signature and timestamp and nonce):
        return PlainTextResponse("missing required parameters", status_code=400)

    body = (await request.body()).decode("utf-8", errors="replace")
    if not body.strip():
        return PlainTextResponse("empty request body", status_code=400)

    ciphertext = extract_encrypt(body)
    if not ciphertext:
        return PlainTextResponse("missing Encrypt element", status_code=400)

    envelope = InboundEnvelope(signature=msg_signature, timestamp=timestamp, nonce=nonce, ciphertext=ciphertext)
    background_tasks.add_task(orchestrator.handle, envelope)
    logger.info("Callback accepted", extra={"context": {"call_id": msg_signature}})
    return PlainTextResponse("success")
