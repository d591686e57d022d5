from dataclasses import dataclass


@dataclass(frozen=True)
class InboundEnvelope:
    """One webhook delivery, exactly as received."""

    signature: str
    timestamp: str
    nonce: str
    ciphertext: str


@dataclass(frozen=True)
class DecryptedPayload:
    token: str
    mailbox_id: str
