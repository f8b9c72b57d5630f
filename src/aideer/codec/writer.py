"""Text chunk construction and splicing into existing image buffers."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import struct

from lxml import etree

from aideer.codec.crc import chunk_crc
from aideer.codec.decoders.card import encode_card_envelope
from aideer.codec.errors import CodecError, InvalidSignature
from aideer.codec.mapping import character_card_to_dict
from aideer.codec.models import CharacterCard, PngChunk
from aideer.codec.reader import (
    JPEG_SOI,
    PNG_SIGNATURE,
    XMP_APP1_HEADER,
    is_valid_jpeg,
    is_valid_png,
    iter_chunks,
)

LOGGER = logging.getLogger(__name__)

CARD_KEYWORDS = ("chara", "ccv3")
SOURCE_URL_KEYWORD = "source_url"
XMP_TOOLKIT = "AiDeer Image Processor"
XMP_CREATOR_TOOL = "AiDeer Browser Extension"

_NS_X = "adobe:ns:meta/"
_NS_RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
_NS_DC = "http://purl.org/dc/elements/1.1/"
_NS_XMP = "http://ns.adobe.com/xap/1.0/"
_NS_AIDEER = "http://aideer.com/ns/1.0/"
_XPACKET_BEGIN = '<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>\n'
_XPACKET_END = '\n<?xpacket end="w"?>'
_JPEG_APP0 = b"\xff\xe0"
_JPEG_APP1 = b"\xff\xe1"
_MAX_JPEG_SEGMENT = 0xFFFF


def build_chunk(chunk_type: str, data: bytes) -> bytes:
    """Serialize one chunk with its length prefix and a fresh CRC."""

    raw_type = chunk_type.encode("ascii")
    if len(raw_type) != 4:
        raise ValueError(f"Chunk type must be 4 ASCII characters: {chunk_type!r}")
    return struct.pack(">I", len(data)) + raw_type + data + struct.pack(">I", chunk_crc(raw_type, data))


def _encode_keyword(keyword: str) -> bytes:
    try:
        raw = keyword.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise ValueError(f"Keyword must be Latin-1: {keyword!r}") from exc
    if not 1 <= len(raw) <= 79:
        raise ValueError(f"Keyword must be 1-79 bytes long: {keyword!r}")
    if b"\x00" in raw:
        raise ValueError(f"Keyword cannot contain NUL: {keyword!r}")
    return raw


def build_text_chunk(keyword: str, text: str) -> bytes:
    """Build a ``tEXt`` chunk, or an uncompressed ``iTXt`` chunk for non-Latin-1 text."""

    raw_keyword = _encode_keyword(keyword)
    try:
        return build_chunk("tEXt", raw_keyword + b"\x00" + text.encode("latin-1"))
    except UnicodeEncodeError:
        # compression flag, method, empty language tag, empty translated keyword
        header = raw_keyword + b"\x00" + b"\x00\x00" + b"\x00" + b"\x00"
        return build_chunk("iTXt", header + text.encode("utf-8"))


def _text_keyword(chunk: PngChunk) -> str | None:
    keyword_end = chunk.data.find(b"\x00")
    if keyword_end < 0:
        return None
    return chunk.data[:keyword_end].decode("latin-1")


def splice_text_chunks(buffer: bytes, new_chunks: list[bytes], *, replace_keywords: frozenset[str]) -> bytes:
    """Copy *buffer*'s chunks verbatim, drop text chunks keyed in *replace_keywords*,
    and insert *new_chunks* immediately before ``IEND``.

    A buffer without ``IEND`` gets the new chunks followed by a fresh ``IEND``.
    """

    output = bytearray(PNG_SIGNATURE)
    inserted = False
    for chunk in iter_chunks(buffer):
        if chunk.is_text and _text_keyword(chunk) in replace_keywords:
            LOGGER.debug("Dropping existing %s chunk %r", chunk.chunk_type, _text_keyword(chunk))
            continue
        if chunk.chunk_type == "IEND":
            output.extend(b"".join(new_chunks))
            inserted = True
        output.extend(chunk.raw(buffer))

    if not inserted:
        LOGGER.warning("PNG has no IEND chunk; appending a new one")
        output.extend(b"".join(new_chunks))
        output.extend(build_chunk("IEND", b""))
    return bytes(output)


def embed_character_data(buffer: bytes, card: CharacterCard) -> bytes:
    """Write *card* as identical ``chara`` and ``ccv3`` chunks, replacing old ones.

    Raises :class:`InvalidSignature` when *buffer* is not a PNG.
    """

    if not is_valid_png(buffer):
        raise InvalidSignature("Cannot embed card: buffer is not a PNG", offset=0)

    encoded = encode_card_envelope(character_card_to_dict(card))
    new_chunks = [build_text_chunk(keyword, encoded) for keyword in CARD_KEYWORDS]
    return splice_text_chunks(buffer, new_chunks, replace_keywords=frozenset(CARD_KEYWORDS))


def build_source_url_xmp(source_url: str, timestamp: datetime | None = None) -> str:
    """Build the XMP packet the browser importer writes into JPEG files."""

    created = (timestamp or datetime.now(timezone.utc)).isoformat()
    nsmap = {"x": _NS_X, "rdf": _NS_RDF}
    xmpmeta = etree.Element(f"{{{_NS_X}}}xmpmeta", nsmap=nsmap)
    xmpmeta.set(f"{{{_NS_X}}}xmptk", XMP_TOOLKIT)
    rdf = etree.SubElement(xmpmeta, f"{{{_NS_RDF}}}RDF")
    description = etree.SubElement(
        rdf,
        f"{{{_NS_RDF}}}Description",
        nsmap={"dc": _NS_DC, "xmp": _NS_XMP, "aideer": _NS_AIDEER},
    )
    description.set(f"{{{_NS_RDF}}}about", "")

    for tag, text in (
        (f"{{{_NS_DC}}}source", source_url),
        (f"{{{_NS_DC}}}description", "Image imported from web page"),
        (f"{{{_NS_XMP}}}CreatorTool", XMP_CREATOR_TOOL),
        (f"{{{_NS_XMP}}}CreateDate", created),
        (f"{{{_NS_AIDEER}}}sourceUrl", source_url),
        (f"{{{_NS_AIDEER}}}importDate", created),
    ):
        etree.SubElement(description, tag).text = text

    body = etree.tostring(xmpmeta, encoding="unicode", pretty_print=True).rstrip("\n")
    return _XPACKET_BEGIN + body + _XPACKET_END


def _stamp_png(buffer: bytes, source_url: str) -> bytes:
    chunk = build_text_chunk(SOURCE_URL_KEYWORD, source_url)
    return splice_text_chunks(buffer, [chunk], replace_keywords=frozenset({SOURCE_URL_KEYWORD}))


def _stamp_jpeg(buffer: bytes, source_url: str, timestamp: datetime | None) -> bytes:
    payload = XMP_APP1_HEADER + build_source_url_xmp(source_url, timestamp).encode("utf-8")
    segment_length = 2 + len(payload)
    if segment_length > _MAX_JPEG_SEGMENT:
        raise CodecError(f"XMP packet too large for one APP1 segment ({segment_length} bytes)")
    segment = _JPEG_APP1 + struct.pack(">H", segment_length) + payload

    insert_at = len(JPEG_SOI)
    if len(buffer) >= 6 and bytes(buffer[2:4]) == _JPEG_APP0:
        (app0_length,) = struct.unpack_from(">H", buffer, 4)
        insert_at = min(4 + app0_length, len(buffer))
    return bytes(buffer[:insert_at]) + segment + bytes(buffer[insert_at:])


def stamp_source_url(
    buffer: bytes,
    source_url: str,
    mime_type: str | None = None,
    timestamp: datetime | None = None,
) -> bytes:
    """Record the page a downloaded image came from inside the image itself."""

    image_type = detect_image_type(buffer, mime_type)
    if image_type == "png":
        return _stamp_png(buffer, source_url)
    if image_type == "jpeg":
        return _stamp_jpeg(buffer, source_url, timestamp)
    raise InvalidSignature("Cannot stamp source URL: unsupported image format", offset=0)


def detect_image_type(buffer: bytes, mime_type: str | None = None) -> str:
    """Return ``"png"``, ``"jpeg"`` or ``"unknown"``; the MIME type wins when it matches the bytes."""

    if mime_type:
        lowered = mime_type.lower()
        if "png" in lowered and is_valid_png(buffer):
            return "png"
        if ("jpeg" in lowered or "jpg" in lowered) and is_valid_jpeg(buffer):
            return "jpeg"
    if is_valid_png(buffer):
        return "png"
    if is_valid_jpeg(buffer):
        return "jpeg"
    return "unknown"

