"""Signature and crypto boundary for WeCom callbacks.

The AES and SHA1 primitives live in a remote crypto oracle; this module only
speaks its JSON protocol and handles the surrounding XML.
"""

import hmac
import re
import time
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from kf_relay.logging_config import get_logger
from kf_relay.models import DecryptedPayload, InboundEnvelope
from kf_relay.services.errors import CryptoError
from kf_relay.services.result import Result

logger = get_logger("crypto_service")

SELF_TEST_MESSAGE = "Hello WeChat!"
SIGNATURE_MISMATCH = "Signature mismatch"

_ENCRYPT_RE = re.compile(r"<Encrypt>(?:<!\[CDATA\[)?(.*?)(?:\]\]>)?</Encrypt>", re.DOTALL)


def extract_encrypt(xml_text: str) -> Optional[str]:
    """Return the ciphertext of the <Encrypt> element, or None."""
    match = _ENCRYPT_RE.search(xml_text or "")
    if not match or not match.group(1).strip():
        return None
    return match.group(1).strip()


def build_reply_xml(encrypt: str, signature: str, timestamp: str, nonce: str) -> str:
    return (
        "<xml>\n"
        f"<Encrypt><![CDATA[{encrypt}]]></Encrypt>\n"
        f"<MsgSignature><![CDATA[{signature}]]></MsgSignature>\n"
        f"<TimeStamp>{timestamp}</TimeStamp>\n"
        f"<Nonce><![CDATA[{nonce}]]></Nonce>\n"
        "</xml>"
    )


def parse_event_xml(xml_text: str) -> dict[str, str]:
    """Flatten the children of an <xml> document into a tag -> text dict."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise CryptoError(f"Malformed event XML: {e}") from e
    return {child.tag: (child.text or "").strip() for child in root}


class CryptoBoundary(ABC):
    @abstractmethod
    async def get_signature(self, timestamp: str, nonce: str, payload: str) -> str:
        pass

    @abstractmethod
    async def decrypt(self, ciphertext: str) -> str:
        pass

    @abstractmethod
    async def encrypt(self, plaintext: str) -> str:
        pass


class RemoteCryptoService(CryptoBoundary):
    """Client for the crypto oracle (actions decrypt, encrypt, getSignature)."""

    def __init__(self, service_url: str, token: str, encoding_aes_key: str, corp_id: str, timeout: float = 30.0):
        if not token or not encoding_aes_key or not corp_id:
            raise CryptoError("token, encoding_aes_key and corp_id are required")
        self.service_url = service_url
        self.token = token
        self.encoding_aes_key = encoding_aes_key
        self.corp_id = corp_id
        self.timeout = timeout

    async def _call(self, action: str, **params: Any) -> Any:
        payload = {
            "action": action,
            "token": self.token,
            "encodingAESKey": self.encoding_aes_key,
            "corpId": self.corp_id,
            **params,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.service_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Crypto oracle {action} request failed: {e}")
            raise CryptoError(f"Crypto service request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Crypto oracle {action} error: {response.status_code} - {response.text}")
            raise CryptoError(f"Crypto service error: {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise CryptoError("Crypto service returned non-JSON body") from e
        if not isinstance(result, dict):
            raise CryptoError("Crypto service returned unexpected body")
        if not result.get("success"):
            raise CryptoError(f"Crypto operation failed: {result.get('error')}")
        return result.get("data")

    async def get_signature(self, timestamp: str, nonce: str, payload: str) -> str:
        return await self._call("getSignature", timestamp=timestamp, nonce=nonce, echostr=payload)

    async def decrypt(self, ciphertext: str) -> str:
        data = await self._call("decrypt", encrypt=ciphertext)
        if isinstance(data, dict):
            data = data.get("message")
        if not isinstance(data, str):
            raise CryptoError("Crypto service returned no decrypted message")
        return data

    async def encrypt(self, plaintext: str) -> str:
        return await self._call("encrypt", message=plaintext)


class WeComMessageCrypt:
    def __init__(self, boundary: CryptoBoundary):
        self.boundary = boundary

    async def _check_signature(self, signature: str, timestamp: str, nonce: str, payload: str) -> None:
        expected = await self.boundary.get_signature(timestamp, nonce, payload)
        if not hmac.compare_digest(str(expected).encode(), (signature or "").encode()):
            raise CryptoError(SIGNATURE_MISMATCH)

    async def verify_url(self, signature: str, timestamp: str, nonce: str, echostr: str) -> Result[str]:
        """Answer the platform's URL verification handshake."""
        try:
            await self._check_signature(signature, timestamp, nonce, echostr)
            return Result.success(await self.boundary.decrypt(echostr))
        except CryptoError as e:
            logger.warning(f"URL verification failed: {e.message}")
            code = "signature_mismatch" if e.message == SIGNATURE_MISMATCH else "crypto_error"
            return Result.from_error(e, code)

    async def open_envelope(self, envelope: InboundEnvelope) -> DecryptedPayload:
        """Verify, decrypt and parse one callback. Raises CryptoError."""
        await self._check_signature(envelope.signature, envelope.timestamp, envelope.nonce, envelope.ciphertext)
        event = parse_event_xml(await self.boundary.decrypt(envelope.ciphertext))

        token = event.get("Token")
        mailbox_id = event.get("OpenKfId")
        if not token or not mailbox_id:
            raise CryptoError(f"Event is missing Token or OpenKfId (event={event.get('Event')!r})")
        return DecryptedPayload(token=token, mailbox_id=mailbox_id)

    async def encrypt_reply(self, text: str, nonce: str, timestamp: Optional[str] = None) -> str:
        timestamp = timestamp or str(int(time.time()))
        ciphertext = await self.boundary.encrypt(text)
        signature = await self.boundary.get_signature(timestamp, nonce, ciphertext)
        return build_reply_xml(ciphertext, signature, timestamp, nonce)

    async def self_test(self) -> dict[str, Any]:
        """Encrypt a fixed message, then verify and decrypt it again."""
        try:
            reply_xml = await self.encrypt_reply(SELF_TEST_MESSAGE, "test_nonce")
            fields = parse_event_xml(reply_xml)
            await self._check_signature(
                fields.get("MsgSignature", ""), fields.get("TimeStamp", ""), fields.get("Nonce", ""), fields["Encrypt"]
            )
            decrypted = await self.boundary.decrypt(fields["Encrypt"])
        except (CryptoError, KeyError) as e:
            logger.error(f"Crypto self-test failed: {e}")
            return {"success": False, "message": str(e)}
        return {
            "success": decrypted == SELF_TEST_MESSAGE,
            "message": "round trip ok" if decrypted == SELF_TEST_MESSAGE else "decrypted text differs",
            "original": SELF_TEST_MESSAGE,
            "decrypted": decrypted,
        }
