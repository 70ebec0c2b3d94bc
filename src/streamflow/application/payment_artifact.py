"""Parsing of the ``X-PAYMENT`` header into typed payment artifacts."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from typing import Any

from streamflow.errors import ValidationError

SIMULATED_ARTIFACT_PREFIX = "demo_"
SUPPORTED_X402_VERSION = 1

_TX_REFERENCE = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True, slots=True)
class TransactionReference:
    """Client already submitted the transfer; only the hash is supplied."""

    value: str


@dataclass(frozen=True, slots=True)
class SignedTransactionEnvelope:
    """Signed but unsubmitted transaction carried in an x402 envelope."""

    x402_version: int
    scheme: str
    network: str
    transaction: bytes
    signature: bytes
    header: str = field(default="", repr=False)

    @property
    def signed_bytes(self) -> bytes:
        """BCS signed transaction: raw transaction followed by its authenticator."""
        return self.transaction + self.signature


@dataclass(frozen=True, slots=True)
class SimulatedArtifact:
    """Synthetic payment accepted only by the simulated backend."""

    value: str


PaymentArtifact = TransactionReference | SignedTransactionEnvelope | SimulatedArtifact


def parse_payment_header(header: str, *, network: str | None = None) -> PaymentArtifact:
    """Classify and decode a payment header.

    ``network``, when given, must match the envelope's declared network.
    """
    value = header.strip()
    if not value:
        raise ValidationError("payment header is empty")
    if value.startswith(SIMULATED_ARTIFACT_PREFIX):
        return SimulatedArtifact(value=value)
    if value.startswith("0x"):
        if not _TX_REFERENCE.match(value):
            raise ValidationError("transaction reference must be 0x followed by 64 hex digits")
        return TransactionReference(value=value.lower())
    return _decode_envelope(value, network=network)


def _decode_envelope(value: str, *, network: str | None) -> SignedTransactionEnvelope:
    try:
        decoded = base64.b64decode(value, validate=True).decode("utf-8")
        envelope = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError("payment header is not a base64-encoded x402 envelope") from exc
    if not isinstance(envelope, dict):
        raise ValidationError("x402 envelope must be a JSON object")

    version = envelope.get("x402Version")
    if version != SUPPORTED_X402_VERSION:
        raise ValidationError(f"unsupported x402 version: {version!r}")
    declared_network = envelope.get("network")
    if not isinstance(declared_network, str) or not declared_network:
        raise ValidationError("x402 envelope missing network")
    if network is not None and declared_network != network:
        raise ValidationError(f"network mismatch: expected {network}, got {declared_network}")

    payload = envelope.get("payload")
    if not isinstance(payload, dict):
        raise ValidationError("x402 envelope missing payload")
    transaction_b64 = _first_str(payload, "transactionBcsBase64", "transaction")
    signature_b64 = _first_str(payload, "signatureBcsBase64", "signature")
    if transaction_b64 is None or signature_b64 is None:
        raise ValidationError("x402 envelope missing transaction or signature")

    return SignedTransactionEnvelope(
        x402_version=version,
        scheme=str(envelope.get("scheme") or ""),
        network=declared_network,
        transaction=_b64_bytes(transaction_b64, "transaction"),
        signature=_b64_bytes(signature_b64, "signature"),
        header=value,
    )


def _first_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        candidate = payload.get(key)
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def _b64_bytes(value: str, label: str) -> bytes:
    try:
        decoded = base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValidationError(f"{label} is not valid base64") from exc
    if not decoded:
        raise ValidationError(f"{label} is empty")
    return decoded


__all__ = [
    "PaymentArtifact",
    "SIMULATED_ARTIFACT_PREFIX",
    "SignedTransactionEnvelope",
    "SimulatedArtifact",
    "TransactionReference",
    "parse_payment_header",
]
