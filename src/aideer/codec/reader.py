"""PNG chunk walking and JPEG APP1/XMP segment lookup."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import struct
from typing import Iterator
import zlib

from aideer.codec.config import CodecSettings
from aideer.codec.errors import (
    ChecksumMismatch,
    InvalidSignature,
    MalformedKeywordTerminator,
    PayloadDecodeError,
    TruncatedChunk,
    UnsupportedCompression,
)
from aideer.codec.models import ChunkRecord, PngChunk

LOGGER = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SOI = b"\xff\xd8"
XMP_APP1_HEADER = b"http://ns.adobe.com/xap/1.0/\x00"

_CHUNK_HEADER = struct.Struct(">I4s")
_JPEG_APP1 = 0xFFE1
_JPEG_SOS = 0xFFDA
_JPEG_STANDALONE = frozenset({0xFFD8, 0xFFD9, *range(0xFFD0, 0xFFD8)})


def is_valid_png(buffer: bytes) -> bool:
    return len(buffer) >= len(PNG_SIGNATURE) and bytes(buffer[:8]) == PNG_SIGNATURE


def is_valid_jpeg(buffer: bytes) -> bool:
    return len(buffer) >= 2 and bytes(buffer[:2]) == JPEG_SOI


def require_png_signature(buffer: bytes) -> None:
    if not is_valid_png(buffer):
        raise InvalidSignature("Buffer does not start with the PNG signature", offset=0)


def _read_chunk(buffer: bytes, offset: int) -> PngChunk:
    if offset + 8 > len(buffer):
        raise TruncatedChunk("Chunk header extends past end of buffer", offset=offset)

    length, raw_type = _CHUNK_HEADER.unpack_from(buffer, offset)
    end = offset + 12 + length
    if end > len(buffer):
        raise TruncatedChunk(
            f"Chunk {raw_type.decode('latin-1')!r} declares {length} bytes beyond buffer end",
            offset=offset,
        )

    data = bytes(buffer[offset + 8 : offset + 8 + length])
    (crc,) = struct.unpack_from(">I", buffer, offset + 8 + length)
    return PngChunk(offset=offset, length=length, chunk_type=raw_type.decode("latin-1"), data=data, crc=crc)


def iter_chunks(buffer: bytes) -> Iterator[PngChunk]:
    """Yield every chunk after the signature, stopping at IEND or truncation.

    Truncation is not fatal: chunks read before the damaged region are
    still yielded.
    """

    require_png_signature(buffer)
    offset = len(PNG_SIGNATURE)
    while offset < len(buffer):
        try:
            chunk = _read_chunk(buffer, offset)
        except TruncatedChunk as exc:
            LOGGER.warning("Stopping PNG scan: %s", exc)
            return
        yield chunk
        if chunk.chunk_type == "IEND":
            if chunk.end < len(buffer):
                LOGGER.debug("Ignoring %d trailing bytes after IEND", len(buffer) - chunk.end)
            return
        offset = chunk.end


def _split_nul(data: bytes, start: int, *, what: str, chunk: PngChunk) -> tuple[bytes, int]:
    end = data.find(b"\x00", start)
    if end < 0:
        raise MalformedKeywordTerminator(f"{chunk.chunk_type} {what} has no NUL terminator", offset=chunk.offset)
    return data[start:end], end + 1


def _decode_latin_text(raw: bytes) -> str:
    # tEXt is nominally Latin-1, but most generators write UTF-8 into it.
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _inflate(payload: bytes, *, keyword: str, chunk: PngChunk, settings: CodecSettings) -> bytes:
    if not settings.inflate_text_chunks:
        raise UnsupportedCompression(
            f"Compressed {chunk.chunk_type} chunk {keyword!r} skipped (inflation disabled)",
            offset=chunk.offset,
        )

    inflater = zlib.decompressobj()
    try:
        inflated = inflater.decompress(payload, settings.max_inflate_bytes)
    except zlib.error as exc:
        raise PayloadDecodeError(f"Cannot inflate {chunk.chunk_type} chunk: {exc}", offset=chunk.offset, keyword=keyword) from exc
    if inflater.unconsumed_tail or not inflater.eof:
        if len(inflated) >= settings.max_inflate_bytes:
            raise UnsupportedCompression(
                f"Compressed {chunk.chunk_type} chunk {keyword!r} exceeds {settings.max_inflate_bytes} bytes",
                offset=chunk.offset,
            )
        raise PayloadDecodeError(f"Truncated {chunk.chunk_type} zlib stream", offset=chunk.offset, keyword=keyword)
    return inflated


def decode_text_chunk(chunk: PngChunk, settings: CodecSettings | None = None) -> ChunkRecord:
    """Decode one tEXt, zTXt, or iTXt chunk into a :class:`ChunkRecord`.

    Raises the non-fatal codec errors for a chunk that must be skipped.
    """

    settings = settings or CodecSettings()
    if settings.verify_crc and chunk.crc != chunk.computed_crc():
        raise ChecksumMismatch(
            f"{chunk.chunk_type} CRC {chunk.crc:#010x} != computed {chunk.computed_crc():#010x}",
            offset=chunk.offset,
        )

    data = chunk.data
    raw_keyword, cursor = _split_nul(data, 0, what="keyword", chunk=chunk)
    keyword = raw_keyword.decode("latin-1")

    if chunk.chunk_type == "tEXt":
        return ChunkRecord(kind="tEXt", keyword=keyword, text=_decode_latin_text(data[cursor:]))

    if chunk.chunk_type == "zTXt":
        if cursor >= len(data):
            raise MalformedKeywordTerminator("zTXt chunk is missing its compression method", offset=chunk.offset)
        method = data[cursor]
        if method != 0:
            raise UnsupportedCompression(f"zTXt compression method {method} is not zlib", offset=chunk.offset)
        inflated = _inflate(data[cursor + 1 :], keyword=keyword, chunk=chunk, settings=settings)
        return ChunkRecord(kind="zTXt", keyword=keyword, text=_decode_latin_text(inflated))

    if chunk.chunk_type == "iTXt":
        if cursor + 2 > len(data):
            raise MalformedKeywordTerminator("iTXt chunk is missing its compression fields", offset=chunk.offset)
        compression_flag = data[cursor]
        compression_method = data[cursor + 1]
        raw_language, cursor = _split_nul(data, cursor + 2, what="language tag", chunk=chunk)
        raw_translated, cursor = _split_nul(data, cursor, what="translated keyword", chunk=chunk)
        payload = data[cursor:]
        if compression_flag != 0:
            if compression_method != 0:
                raise UnsupportedCompression(
                    f"iTXt compression method {compression_method} is not zlib", offset=chunk.offset
                )
            payload = _inflate(payload, keyword=keyword, chunk=chunk, settings=settings)
        return ChunkRecord(
            kind="iTXt",
            keyword=keyword,
            text=payload.decode("utf-8", errors="replace"),
            language_tag=raw_language.decode("latin-1"),
            translated_keyword=raw_translated.decode("utf-8", errors="replace"),
        )

    raise ValueError(f"Not a text chunk: {chunk.chunk_type}")


def read_text_records(buffer: bytes, settings: CodecSettings | None = None) -> list[ChunkRecord]:
    """Collect every readable text chunk of a PNG buffer, in file order."""

    settings = settings or CodecSettings()
    records: list[ChunkRecord] = []
    for chunk in iter_chunks(buffer):
        if not chunk.is_text:
            continue
        try:
            record = decode_text_chunk(chunk, settings)
        except (MalformedKeywordTerminator, UnsupportedCompression, ChecksumMismatch, PayloadDecodeError) as exc:
            LOGGER.warning("Skipping %s chunk: %s", chunk.chunk_type, exc)
            continue
        LOGGER.debug("Found %s chunk with keyword %r", record.kind, record.keyword)
        records.append(record)
    return records


@dataclass(frozen=True, slots=True)
class JpegSegment:
    marker: int
    offset: int
    length: int
    payload: bytes


def iter_jpeg_segments(buffer: bytes) -> Iterator[JpegSegment]:
    """Yield marker segments up to start-of-scan; standalone markers are skipped."""

    if not is_valid_jpeg(buffer):
        raise InvalidSignature("Buffer does not start with the JPEG SOI marker", offset=0)

    offset = 2
    size = len(buffer)
    while offset < size - 1:
        if buffer[offset] != 0xFF:
            offset += 1
            continue
        marker = (buffer[offset] << 8) | buffer[offset + 1]
        if marker == 0xFFFF:
            # fill byte
            offset += 1
            continue
        if marker in _JPEG_STANDALONE:
            offset += 2
            continue
        if offset + 4 > size:
            LOGGER.warning("JPEG segment header truncated at offset %d", offset)
            return

        (length,) = struct.unpack_from(">H", buffer, offset + 2)
        if length < 2 or offset + 2 + length > size:
            LOGGER.warning("JPEG segment %#06x at offset %d is truncated", marker, offset)
            return

        yield JpegSegment(
            marker=marker,
            offset=offset,
            length=length,
            payload=bytes(buffer[offset + 4 : offset + 2 + length]),
        )
        if marker == _JPEG_SOS:
            return
        offset += 2 + length


def find_jpeg_xmp_packets(buffer: bytes) -> list[str]:
    """Return the packet of every APP1/XMP segment, in file order."""

    packets: list[str] = []
    for segment in iter_jpeg_segments(buffer):
        if segment.marker == _JPEG_APP1 and segment.payload.startswith(XMP_APP1_HEADER):
            packet = segment.payload[len(XMP_APP1_HEADER) :]
            packets.append(packet.decode("utf-8", errors="replace").rstrip("\x00"))
    return packets
