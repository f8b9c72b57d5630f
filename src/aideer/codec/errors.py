"""Error taxonomy for chunk walking, payload decoding, and embedding."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CodecError(Exception):
    """Base error for codec failures, optionally anchored to a buffer offset."""

    message: str
    offset: int | None = None

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (offset={self.offset})"


class InvalidSignature(CodecError):
    """Buffer does not start with the expected container magic bytes."""


class TruncatedChunk(CodecError):
    """A chunk header or body extends past the end of the buffer."""


class UnsupportedCompression(CodecError):
    """A compressed text chunk that the current settings cannot inflate."""


class MalformedKeywordTerminator(CodecError):
    """A text chunk keyword (or iTXt header field) lacks its NUL terminator."""


class ChecksumMismatch(CodecError):
    """Stored chunk CRC differs from the CRC computed over type and data."""


@dataclass(slots=True)
class PayloadDecodeError(CodecError):
    """Base64, JSON, or XML decoding failed for one keyword."""

    keyword: str = ""

    def __str__(self) -> str:
        return f"{self.message} (keyword={self.keyword!r})"
