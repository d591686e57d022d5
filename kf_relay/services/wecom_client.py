import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from kf_relay.logging_config import get_logger
from kf_relay.models import InboxMessage, SyncPage
from kf_relay.services.errors import GatewayError, RelayError, SyncError

logger = get_logger("wecom_client")

ACCESS_TOKEN_TTL_SECONDS = 7200
ACCESS_TOKEN_SAFETY_MARGIN_SECONDS = 300


class MediaType:
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    FILE = "file"


class RemoteMailbox(ABC):
    @abstractmethod
    async def sync(self, token: str, mailbox_id: str, cursor: Optional[str], page_size: int) -> SyncPage:
        """Fetch one page of mailbox messages after cursor."""


class MessagingGateway(ABC):
    @abstractmethod
    async def send_text(self, user_id: str, mailbox_id: str, text: str) -> dict:
        pass

    @abstractmethod
    async def upload_file(self, content: bytes, filename: str) -> str:
        """Upload a temporary file and return its media id."""

    @abstractmethod
    async def send_file(self, user_id: str, mailbox_id: str, media_id: str) -> dict:
        pass


class WeComClient(RemoteMailbox, MessagingGateway):
    """Client for the WeCom customer-service (kf) API."""

    def __init__(
        self,
        corp_id: str,
        corp_secret: str,
        base_url: str = "https://qyapi.weixin.qq.com/cgi-bin",
        timeout: float = 30.0,
    ):
        self.corp_id = corp_id
        self.corp_secret = corp_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    async def get_access_token(self, force_refresh: bool = False) -> str:
        if not force_refresh and self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        params = {"corpid": self.corp_id, "corpsecret": self.corp_secret}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.base_url}/gettoken", params=params)
        except httpx.HTTPError as e:
            raise GatewayError(f"gettoken request failed: {e}") from e

        result = self._check(response, "gettoken", GatewayError)
        self._access_token = result["access_token"]
        expires_in = int(result.get("expires_in") or ACCESS_TOKEN_TTL_SECONDS)
        self._token_expires_at = time.monotonic() + max(expires_in - ACCESS_TOKEN_SAFETY_MARGIN_SECONDS, 0)
        return self._access_token

    @staticmethod
    def _check(response: httpx.Response, action: str, error_cls: type[RelayError]) -> dict:
        if response.status_code >= 400:
            logger.error(f"WeCom {action} HTTP {response.status_code}: {response.text}")
            raise error_cls(f"{action} failed: HTTP {response.status_code} - {response.text}")
        try:
            result = response.json()
        except ValueError as e:
            raise error_cls(f"{action} returned non-JSON body") from e
        if not isinstance(result, dict):
            logger.error(f"WeCom {action} returned unexpected body: {response.text}")
            raise error_cls(f"{action} returned unexpected body")
        if result.get("errcode", 0) != 0:
            logger.error(f"WeCom {action} error: {result}")
            raise error_cls(f"{action} failed: errcode={result.get('errcode')} errmsg={result.get('errmsg')}")
        return result

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        files: Optional[dict] = None,
        error_cls: type[RelayError] = GatewayError,
    ) -> dict:
        access_token = await self.get_access_token()
        query = {"access_token": access_token, **(params or {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, f"{self.base_url}{path}", params=query, json=json, files=files
                )
        except httpx.HTTPError as e:
            logger.error(f"WeCom {action} request failed: {e}")
            raise error_cls(f"{action} request failed: {e}") from e
        return self._check(response, action, error_cls)

    async def _send_message(self, touser: str, open_kfid: str, msgtype: str, body: dict) -> dict:
        data = {"touser": touser, "open_kfid": open_kfid, "msgtype": msgtype, msgtype: body}
        return await self._request("POST", "/kf/send_msg", f"send_msg[{msgtype}]", json=data)

    # RemoteMailbox

    async def sync_messages(
        self, token: str, open_kfid: str, cursor: Optional[str] = None, limit: int = 100
    ) -> dict:
        data = {
            "token": token,
            "open_kfid": open_kfid,
            "limit": limit,
            "voice_format": 0,
        }
        if cursor:
            data["cursor"] = cursor
        return await self._request("POST", "/kf/sync_msg", "sync_msg", json=data, error_cls=SyncError)

    async def sync(self, token: str, mailbox_id: str, cursor: Optional[str], page_size: int) -> SyncPage:
        try:
            result = await self.sync_messages(token, mailbox_id, cursor, page_size)
        except GatewayError as e:
            # access token failures arrive as GatewayError
            raise SyncError(e.message) from e
        messages = [InboxMessage.from_remote(raw) for raw in result.get("msg_list") or []]
        return SyncPage(messages=messages, next_cursor=result.get("next_cursor") or None)

    # MessagingGateway

    async def send_text(self, user_id: str, mailbox_id: str, text: str) -> dict:
        return await self._send_message(user_id, mailbox_id, "text", {"content": text})

    async def send_file(self, user_id: str, mailbox_id: str, media_id: str) -> dict:
        return await self._send_message(user_id, mailbox_id, "file", {"media_id": media_id})

    async def send_image(self, user_id: str, mailbox_id: str, media_id: str) -> dict:
        return await self._send_message(user_id, mailbox_id, "image", {"media_id": media_id})

    async def send_link(
        self, user_id: str, mailbox_id: str, title: str, desc: str, url: str, thumb_media_id: str
    ) -> dict:
        link = {"title": title, "desc": desc, "url": url, "thumb_media_id": thumb_media_id}
        return await self._send_message(user_id, mailbox_id, "link", link)

    async def upload_media(
        self, media_type: str, content: bytes, filename: str, content_type: str = "application/octet-stream"
    ) -> dict:
        files = {"media": (filename, content, content_type)}
        return await self._request(
            "POST", "/media/upload", f"media/upload[{media_type}]", params={"type": media_type}, files=files
        )

    async def upload_file(self, content: bytes, filename: str) -> str:
        result = await self.upload_media(MediaType.FILE, content, filename, "text/plain")
        media_id = result.get("media_id")
        if not media_id:
            raise GatewayError(f"media/upload returned no media_id: {result}")
        return media_id

    # Account helpers

    async def get_account_list(self) -> dict:
        return await self._request("GET", "/kf/account/list", "kf/account/list")

    async def get_service_state(self, open_kfid: str, external_userid: str) -> dict:
        data = {"open_kfid": open_kfid, "external_userid": external_userid}
        return await self._request("POST", "/kf/service_state/get", "kf/service_state/get", json=data)
