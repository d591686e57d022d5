"""Operator endpoints for inspecting and repairing relay state."""

import hmac
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from kf_relay.config import Settings, get_settings
from kf_relay.dependencies import (
    get_conversation_store,
    get_ledger,
    get_optional_message_crypt,
    get_wecom_client,
)
from kf_relay.logging_config import get_logger
from kf_relay.schemas import ApiResponse, BusinessCode, ClearConversationRequest, ClearMessageRecordsRequest
from kf_relay.services.ai_service import get_service_status
from kf_relay.services.conversation_service import ConversationStore
from kf_relay.services.crypto_service import WeComMessageCrypt
from kf_relay.services.errors import GatewayError, StorageError
from kf_relay.services.ledger import DedupLedger
from kf_relay.services.wecom_client import MediaType, WeComClient

logger = get_logger("admin")

UPLOAD_MEDIA_TYPES = {MediaType.IMAGE, MediaType.VOICE, MediaType.VIDEO, MediaType.FILE}


def _require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin token")


router = APIRouter(tags=["admin"], dependencies=[Depends(_require_admin_token)])


def _render(body: ApiResponse, status_code: int = 200) -> JSONResponse:
    content = body.model_dump(mode="json")
    if content["details"] is None:
        del content["details"]
    return JSONResponse(content, status_code=status_code)


def _ok(data: Any = None, message: str = "success") -> JSONResponse:
    return _render(ApiResponse(success=True, code=BusinessCode.SUCCESS, message=message, data=data))


def _fail(message: str, code: BusinessCode, status_code: int, details: Optional[dict] = None) -> JSONResponse:
    return _render(ApiResponse(success=False, code=code, message=message, details=details), status_code)


@router.get("/get_access_token")
async def get_access_token(
    settings: Settings = Depends(get_settings),
    wecom: WeComClient = Depends(get_wecom_client),
):
    if not settings.wechat_configured:
        return _fail("WeCom configuration missing", BusinessCode.WECHAT_CONFIG_ERROR, 400)
    try:
        token = await wecom.get_access_token()
    except GatewayError as e:
        return _fail("WeCom API call failed", BusinessCode.WECHAT_API_ERROR, 500, {"error": e.message})
    return _ok({"access_token": token}, "access token fetched")


@router.get("/ai_status")
async def ai_status(settings: Settings = Depends(get_settings)):
    return _ok(get_service_status(settings), "AI service status")


@router.get("/conversation_stats")
async def conversation_stats(
    user_id: Optional[str] = None,
    conversations: ConversationStore = Depends(get_conversation_store),
):
    if not user_id:
        return _ok(conversations.describe(), "conversation store info")
    stats = await conversations.stats(user_id)
    return _ok({"user_id": user_id, **asdict(stats)}, "conversation stats")


@router.post("/clear_conversation")
async def clear_conversation(
    request: ClearConversationRequest,
    conversations: ConversationStore = Depends(get_conversation_store),
):
    try:
        await conversations.clear(request.user_id)
    except StorageError as e:
        return _fail("KV operation failed", BusinessCode.KV_OPERATION_ERROR, 500, {"error": e.message})
    return _ok({"user_id": request.user_id}, "conversation cleared")


@router.get("/message_status")
async def message_status(msg_id: Optional[str] = None, ledger: DedupLedger = Depends(get_ledger)):
    if not msg_id:
        return _fail("msg_id is required", BusinessCode.BAD_REQUEST, 400)
    try:
        record = await ledger.get_record(msg_id, strict=True)
    except StorageError as e:
        return _fail("KV operation failed", BusinessCode.KV_OPERATION_ERROR, 500, {"error": e.message})
    if record is None:
        return _ok({"msg_id": msg_id, "processed": False}, "message not processed")
    return _ok({"msg_id": msg_id, "processed": True, "record": asdict(record)}, "message processed")


@router.post("/clear_message_records")
async def clear_message_records(request: ClearMessageRecordsRequest, ledger: DedupLedger = Depends(get_ledger)):
    try:
        removed = await ledger.remove_many(request.msg_ids)
    except StorageError as e:
        return _fail("KV operation failed", BusinessCode.KV_OPERATION_ERROR, 500, {"error": e.message})
    return _ok({"removed": removed, "count": len(removed)}, "message records cleared")


@router.get("/test_crypto")
async def test_crypto(
    settings: Settings = Depends(get_settings),
    crypt: Optional[WeComMessageCrypt] = Depends(get_optional_message_crypt),
):
    config = {
        "token": bool(settings.wechat_kf_token),
        "encoding_aes_key": bool(settings.wechat_kf_encoding_aes_key),
        "corp_id": bool(settings.wechat_corp_id),
        "service_url": settings.crypto_service_url,
    }
    if crypt is None:
        return _fail("WeCom crypto configuration missing", BusinessCode.WECHAT_CONFIG_ERROR, 400, {"config": config})
    result = await crypt.self_test()
    if not result["success"]:
        return _fail("Crypto self-test failed", BusinessCode.WECHAT_CRYPTO_ERROR, 500, {"config": config, **result})
    return _ok({"config": config, **result}, "crypto self-test passed")


@router.post("/upload_media")
async def upload_media(
    media_type: str = Form(...),
    file: UploadFile = File(...),
    filename: Optional[str] = Form(default=None),
    wecom: WeComClient = Depends(get_wecom_client),
):
    if media_type not in UPLOAD_MEDIA_TYPES:
        return _fail(
            "Unsupported media_type", BusinessCode.BAD_REQUEST, 400, {"allowed": sorted(UPLOAD_MEDIA_TYPES)}
        )
    content = await file.read()
    if not content:
        return _fail("Uploaded file is empty", BusinessCode.BAD_REQUEST, 400)

    name = filename or file.filename or "upload"
    try:
        result = await wecom.upload_media(
            media_type, content, name, file.content_type or "application/octet-stream"
        )
    except GatewayError as e:
        return _fail("WeCom API call failed", BusinessCode.WECHAT_API_ERROR, 500, {"error": e.message})
    logger.info("Media uploaded", extra={"context": {"media_type": media_type, "filename": name}})
    return _ok(result, "temporary media uploaded")
