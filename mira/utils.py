"""
Shared helpers for configuration parsing and audio streaming

- Environment values: parse_int, parse_float, split_csv (bad or blank values fall back)
- Async: await_with_timeout
- Bytes: chunk_bytes for fixed-size audio frames
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, TypeVar

_N = TypeVar("_N", int, float)


def _parse_number(value: str | None, default: _N, cast: Callable[[str], _N]) -> _N:
    text = (value or "").strip()
    if not text:
        return default
    try:
        return cast(text)
    except ValueError:
        return default


def parse_int(value: str | None, default: int, *, minimum: int | None = None) -> int:
    """Integer from an env value, raised to ``minimum`` when one is given."""
    number = _parse_number(value, default, int)
    if minimum is not None and number < minimum:
        return minimum
    return number


def parse_float(value: str | None, default: float) -> float:
    return _parse_number(value, default, float)


def split_csv(value: str | None) -> list[str]:
    """Comma-separated tokens, trimmed, empties dropped."""
    tokens = (item.strip() for item in (value or "").split(","))
    return [token for token in tokens if token]


async def await_with_timeout(awaitable: Awaitable[Any], timeout: float | None) -> Any:
    """``asyncio.wait_for`` where a ``None`` timeout waits forever."""
    return await asyncio.wait_for(awaitable, timeout)


def chunk_bytes(data: bytes, size: int) -> Iterator[bytes]:
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for offset in range(0, len(data), size):
        yield data[offset : offset + size]
