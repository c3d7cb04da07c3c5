"""
common.utils

Hex and address helpers shared by the fetcher, decoder and storage layers.
"""
import re
from typing import Iterable, List, Union

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def strip_0x(s: str) -> str:
    return s[2:] if isinstance(s, str) and s[:2] in ("0x", "0X") else s


def hex_to_int(v: Union[str, int]) -> int:
    """Return an int for a 0x hex string, a base 10 string or an int."""
    if isinstance(v, bool):
        raise ValueError(f"not a number: {v!r}")
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if s[:2] in ("0x", "0X"):
        return int(s, 16)
    return int(s)


def hex_to_bytes(v: Union[str, bytes], size: int = None) -> bytes:
    """
    Decode a 0x hex string into bytes. When size is given the result must be exactly that long.
    """
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
    else:
        h = strip_0x(str(v).strip())
        if len(h) % 2 or not _HEX_RE.match(h):
            raise ValueError(f"invalid hex string: {v!r}")
        b = bytes.fromhex(h)
    if size is not None and len(b) != size:
        raise ValueError(f"expected {size} bytes, got {len(b)}")
    return b


def normalize_address(addr: str) -> str:
    """
    Returns lowercased 0x-prefixed 40-hex address or raises ValueError.
    Accepts inputs with extra whitespace/quotes.
    """
    if not addr:
        raise ValueError("Empty address.")
    a = str(addr).strip().strip('"').strip("'")
    h = strip_0x(a)
    if len(h) != 40 or not _HEX_RE.match(h):
        raise ValueError(f"Invalid address: {addr!r} (need 20-byte hex, e.g. 0x...40 hex chars)")
    return "0x" + h.lower()


def normalize_addresses(addrs: Iterable[str]) -> List[str]:
    seen = []
    for a in addrs or []:
        n = normalize_address(a)
        if n not in seen:
            seen.append(n)
    return seen


def to_hex(b: bytes) -> str:
    return "0x" + bytes(b).hex()
