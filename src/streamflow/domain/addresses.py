"""Wallet address checks for Aptos/Movement style accounts."""

from __future__ import annotations

import re

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40,64}$")
_ADDRESS_HEX_LENGTH = 64


def is_valid_address(address: str | None) -> bool:
    """Non-blank, and a 40-64 digit hex string when ``0x``-prefixed."""
    if not address:
        return False
    stripped = address.strip()
    if not stripped:
        return False
    if stripped.startswith("0x"):
        return bool(_HEX_ADDRESS.match(stripped))
    return True


def normalize_address(address: str) -> str:
    """Pad ``0x`` addresses to 64 lower-case hex digits; other forms pass through stripped."""
    stripped = address.strip()
    if not stripped.startswith("0x"):
        return stripped
    return "0x" + stripped[2:].lower().rjust(_ADDRESS_HEX_LENGTH, "0")


def same_address(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return normalize_address(left) == normalize_address(right)


__all__ = ["is_valid_address", "normalize_address", "same_address"]
