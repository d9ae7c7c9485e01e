"""
multikf/utils/meminfo.py

Resource probes. Parses CPU and memory facts out of the text a Linux host or
guest reports about itself (`nproc`, `/proc/meminfo`) and renders them as the
short strings shown by `multikf list`.
"""

from __future__ import annotations

import os
from typing import Dict, Optional

from pydantic import BaseModel, Field

_BYTES_PER_KB = 1000
_BYTES_PER_MIB = 1024 * 1024


class CpuInfo(BaseModel):
    """Number of CPUs visible to a host or guest."""

    num_cpus: int = Field(..., ge=1)


class MemInfo(BaseModel):
    """
    Memory facts from a /proc/meminfo record. Values are kept in kB as the
    record reports them; only `total_kb` and `free_kb` are required.
    """

    total_kb: int
    free_kb: int
    available_kb: Optional[int] = None
    buffers_kb: Optional[int] = None
    cached_kb: Optional[int] = None

    @staticmethod
    def _format(kb: int) -> str:
        return f"{kb * _BYTES_PER_KB / _BYTES_PER_MIB:.2f} Mib"

    def total(self) -> str:
        return self._format(self.total_kb)

    def free(self) -> str:
        return self._format(self.free_kb)


_OPTIONAL_FIELDS = {
    "MemAvailable": "available_kb",
    "Buffers": "buffers_kb",
    "Cached": "cached_kb",
}


def _parse_kb(raw: str) -> Optional[int]:
    parts = raw.split()
    if not parts:
        return None
    try:
        return int(parts[0])
    except ValueError:
        return None


def parse_meminfo(text: str) -> MemInfo:
    """
    Parse a line-oriented `Key:   value kB` record.

    Unknown keys and lines without a colon are ignored. Optional fields that
    are missing or unparsable are left as None.

    Raises:
        ValueError: If MemTotal or MemFree is missing or unparsable.
    """
    raw: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            raw[key.strip()] = value.strip()

    total = _parse_kb(raw.get("MemTotal", ""))
    free = _parse_kb(raw.get("MemFree", ""))
    if total is None or free is None:
        raise ValueError("meminfo record lacks a parsable MemTotal or MemFree")

    optional = {
        attr: _parse_kb(raw[key]) for key, attr in _OPTIONAL_FIELDS.items() if key in raw
    }
    return MemInfo(total_kb=total, free_kb=free, **optional)


def parse_cpu_count(text: str) -> CpuInfo:
    """
    Parse the output of `nproc`.

    Raises:
        ValueError: If the output is not a positive integer.
    """
    stripped = text.strip()
    if not stripped.isdigit() or int(stripped) < 1:
        raise ValueError(f"unexpected cpu count {stripped!r}")
    return CpuInfo(num_cpus=int(stripped))


def host_cpu_info() -> CpuInfo:
    return CpuInfo(num_cpus=os.cpu_count() or 1)
