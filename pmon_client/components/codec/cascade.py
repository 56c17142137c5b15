"""
Decompression and text-decoding cascade for compressed envelopes.

The service compresses large frames but does not reliably say how, and its
text encoding is not known in advance. Every (format, encoding) pair is an
attempt; the cascade is a fold over the ordered attempts that stops at the
first one yielding JSON and otherwise collects every failure reason.

Each attempt is a pure function returning an Attempt value. Library
exceptions are caught at the leaf and turned into failure reasons; nothing
above the leaves uses exceptions for control flow.
"""

from __future__ import annotations

import gzip
import json
import zlib
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Final, Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


# =============================================================================
# Constants
# =============================================================================


GZIP: Final[str] = "gzip"
ZLIB: Final[str] = "zlib"
RAW_DEFLATE: Final[str] = "raw"

# Fallback order after the detected format
FORMAT_ORDER: Final[tuple[str, ...]] = (GZIP, ZLIB, RAW_DEFLATE)

TEXT_ENCODINGS: Final[tuple[str, ...]] = ("utf-8", "utf-16-le", "utf-16-be", "latin-1")

GZIP_MAGIC: Final[bytes] = b"\x1f\x8b"
ZLIB_FIRST_BYTE: Final[int] = 0x78

BYTE_ORDER_MARK: Final[str] = "\ufeff"


# =============================================================================
# Attempt values
# =============================================================================


@dataclass(frozen=True, slots=True)
class Attempt(Generic[T]):
    """Outcome of one strategy: either a value or a failure reason."""

    ok: bool
    value: T | None = None
    reason: str = ""

    @classmethod
    def success(cls, value: T) -> Attempt[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> Attempt[T]:
        return cls(ok=False, reason=reason)


@dataclass(frozen=True, slots=True)
class CascadeResult(Generic[T]):
    """
    Result of folding a strategy list.

    Attributes:
        value: Value of the first successful strategy, if any.
        strategy: Label of the strategy that succeeded.
        reasons: "<label>: reason" for every strategy tried and failed.
    """

    value: T | None
    strategy: str | None
    reasons: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return self.strategy is not None


Strategy = tuple[str, Callable[[], Attempt[T]]]


def first_success(strategies: Iterable[Strategy[T]]) -> CascadeResult[T]:
    """
    Run strategies in order, short-circuiting on the first success.

    Strategies are pulled lazily, so a generator can compute later
    strategies from earlier intermediate results without doing work that
    an earlier success makes unnecessary.
    """
    reasons: list[str] = []
    for label, run in strategies:
        attempt = run()
        if attempt.ok:
            return CascadeResult(attempt.value, label, tuple(reasons))
        reasons.append(f"{label}: {attempt.reason}")
    return CascadeResult(None, None, tuple(reasons))


# =============================================================================
# Decompression strategies
# =============================================================================


def _inflate(fn: Callable[[bytes], bytes], data: bytes) -> Attempt[bytes]:
    try:
        out = fn(data)
    except (OSError, EOFError, zlib.error) as exc:
        return Attempt.failure(str(exc) or type(exc).__name__)
    if not out:
        return Attempt.failure("decompressed to empty data")
    return Attempt.success(out)


def inflate_gzip(data: bytes) -> Attempt[bytes]:
    return _inflate(gzip.decompress, data)


def inflate_zlib(data: bytes) -> Attempt[bytes]:
    return _inflate(zlib.decompress, data)


def inflate_raw(data: bytes) -> Attempt[bytes]:
    return _inflate(partial(zlib.decompress, wbits=-zlib.MAX_WBITS), data)


DECOMPRESSORS: Final[dict[str, Callable[[bytes], Attempt[bytes]]]] = {
    GZIP: inflate_gzip,
    ZLIB: inflate_zlib,
    RAW_DEFLATE: inflate_raw,
}


def detect_format(data: bytes) -> str:
    """Guess the compression format from the leading bytes."""
    if data[:2] == GZIP_MAGIC:
        return GZIP
    if data[:1] and data[0] == ZLIB_FIRST_BYTE:
        return ZLIB
    return RAW_DEFLATE


def format_order(data: bytes) -> list[str]:
    """Detected format first, then the others in fixed fallback order."""
    detected = detect_format(data)
    return [detected] + [fmt for fmt in FORMAT_ORDER if fmt != detected]


# =============================================================================
# Text strategies
# =============================================================================


def parse_json_text(data: bytes, encoding: str) -> Attempt[Any]:
    """
    Decode bytes with one encoding and parse the text as JSON.

    The decoded text, trimmed and without a leading BOM, must start with
    '{' or '[' before a parse is attempted.
    """
    try:
        text = data.decode(encoding)
    except UnicodeDecodeError as exc:
        return Attempt.failure(f"undecodable ({exc.reason})")

    text = text.lstrip(BYTE_ORDER_MARK).strip()
    if not text.startswith(("{", "[")):
        return Attempt.failure("not JSON text")

    try:
        return Attempt.success(json.loads(text))
    except json.JSONDecodeError as exc:
        return Attempt.failure(f"invalid JSON ({exc.msg})")


# =============================================================================
# Cascade
# =============================================================================


def _strategies(payload: bytes) -> Iterator[Strategy[Any]]:
    for fmt in format_order(payload):
        inflated = DECOMPRESSORS[fmt](payload)
        if not inflated.ok:
            yield f"{fmt}/*", partial(Attempt.failure, inflated.reason)
            continue
        for encoding in TEXT_ENCODINGS:
            yield f"{fmt}/{encoding}", partial(parse_json_text, inflated.value, encoding)


def recover_json(payload: bytes) -> CascadeResult[Any]:
    """
    Recover a JSON value from compressed bytes of unknown format and encoding.

    Tries the detected format, then the remaining formats; for each format
    that inflates, tries every text encoding in order.

    Args:
        payload: Compressed bytes (already base64-decoded).

    Returns:
        CascadeResult whose strategy label is "<format>/<encoding>" on success.
    """
    return first_success(_strategies(payload))
