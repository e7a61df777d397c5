"""Checksum algorithms a layout can name for its trailer record."""
from __future__ import annotations

import hashlib
import zlib
from typing import Callable, Mapping


def _crc32(data: bytes) -> str:
    return f"{zlib.crc32(data) & 0xFFFFFFFF:08X}"


def _adler32(data: bytes) -> str:
    return f"{zlib.adler32(data) & 0xFFFFFFFF:08X}"


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest().upper()


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest().upper()


CHECKSUMS: Mapping[str, Callable[[bytes], str]] = {
    "crc32": _crc32,
    "adler32": _adler32,
    "md5": _md5,
    "sha256": _sha256,
}
