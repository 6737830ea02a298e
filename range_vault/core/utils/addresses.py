from __future__ import annotations

from eth_utils import is_address, keccak, to_checksum_address


def derive_address(label: str) -> str:
    """Deterministic checksummed address for an in-process account or contract."""
    return to_checksum_address(keccak(text=label)[-20:])


def ensure_address(value: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)
