"""
Frame decoding: JSON parse, optional decompression, typed message.

decode() never raises for bad input. Malformed frames, undecodable
compressed payloads and non-object JSON all come back as DecodeError values
so the channel reader can log and drop them without touching the connection.

Usage:
    result = decode(frame)
    if isinstance(result, DecodeError):
        logger.warning("Dropping frame", reason=result.summary)
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Mapping, Self

from pmon_client.components.codec.cascade import recover_json
from pmon_client.components.codec.messages import Message, message_from_payload


@dataclass(frozen=True, slots=True)
class DecodeError:
    """
    A frame that could not be turned into a message.

    Attributes:
        stage: Where decoding stopped: "json", "envelope" or "cascade".
        reasons: Every failed attempt, "<format>/<encoding>: reason" for the cascade.
    """

    stage: str
    reasons: tuple[str, ...]

    @property
    def summary(self) -> str:
        if not self.reasons:
            return self.stage
        return f"{self.stage}: {self.reasons[-1]}"


@dataclass(frozen=True, slots=True)
class MessageEnvelope:
    """
    Outer wrapper of a compressed frame.

    Only `data` drives decoding; the encoding hint and the declared sizes are
    kept for diagnostics because the service does not set them reliably.
    """

    type: str | None
    compressed: bool
    encoding: str | None
    data: str | None
    compressed_size: int | None
    original_size: int | None

    @classmethod
    def from_frame(cls, frame: Mapping[str, Any]) -> Self:
        def _size(key: str) -> int | None:
            value = frame.get(key)
            return value if isinstance(value, int) and not isinstance(value, bool) else None

        data = frame.get("data")
        encoding = frame.get("encoding")
        raw_type = frame.get("type")
        return cls(
            type=raw_type if isinstance(raw_type, str) else None,
            compressed=bool(frame.get("compressed")),
            encoding=encoding if isinstance(encoding, str) else None,
            data=data if isinstance(data, str) else None,
            compressed_size=_size("compressedSize"),
            original_size=_size("originalSize"),
        )

    def payload_bytes(self) -> bytes | DecodeError:
        """Base64-decode the payload, rejecting empty or invalid data."""
        if not self.data:
            return DecodeError("envelope", ("empty compressed payload",))
        try:
            payload = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            return DecodeError("envelope", (f"invalid base64 ({exc})",))
        if not payload:
            return DecodeError("envelope", ("empty compressed payload",))
        return payload


def _unwrap(envelope: MessageEnvelope) -> dict[str, Any] | DecodeError:
    payload = envelope.payload_bytes()
    if isinstance(payload, DecodeError):
        return payload

    result = recover_json(payload)
    if not result.ok:
        return DecodeError("cascade", result.reasons)
    if not isinstance(result.value, dict):
        return DecodeError("cascade", (f"{result.strategy}: payload is not a JSON object",))
    return result.value


def decode(raw: str | bytes) -> Message | DecodeError:
    """
    Decode one inbound frame.

    Args:
        raw: Frame as received; bytes frames are read as UTF-8.

    Returns:
        The typed message, or a DecodeError describing why the frame is dropped.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            return DecodeError("json", (f"binary frame is not UTF-8 ({exc.reason})",))

    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        return DecodeError("json", (exc.msg,))

    if not isinstance(frame, dict):
        return DecodeError("json", (f"frame is a JSON {type(frame).__name__}, not an object",))

    if frame.get("compressed"):
        unwrapped = _unwrap(MessageEnvelope.from_frame(frame))
        if isinstance(unwrapped, DecodeError):
            return unwrapped
        frame = unwrapped

    return message_from_payload(frame)
