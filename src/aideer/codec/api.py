"""Buffer-in, record-out operations exposed to the rest of the application."""

from __future__ import annotations

import logging
from typing import Any

from aideer.codec.config import CodecSettings
from aideer.codec.dispatch import CARD_ASSET_PREFIX, CARD_KINDS, XMP_KEYWORD, dispatch_records
from aideer.codec.errors import CodecError, InvalidSignature
from aideer.codec.mapping import build_prompt_metadata, is_valid_prompt_metadata, map_to_character_card
from aideer.codec.models import CardPayloads, CharacterCard, ChunkRecord, PayloadKind, PromptMetadata
from aideer.codec.reader import find_jpeg_xmp_packets, is_valid_jpeg, is_valid_png, read_text_records

LOGGER = logging.getLogger(__name__)

_CARD_READ_KINDS = CARD_KINDS | {PayloadKind.CARD_ASSET}
_PROMPT_VERBATIM_KINDS = _CARD_READ_KINDS


def read_card_payloads(buffer: bytes, settings: CodecSettings | None = None) -> CardPayloads:
    """Decode every card and card-asset chunk of a PNG without choosing between them.

    Raises :class:`InvalidSignature` for non-PNG input.
    """

    records = read_text_records(buffer, settings)
    ccv3: dict[str, Any] | None = None
    chara: dict[str, Any] | None = None
    assets: dict[str, str] = {}

    for payload in dispatch_records(records, kinds=_CARD_READ_KINDS):
        if payload.kind is PayloadKind.CHARACTER_CARD_V3:
            ccv3 = payload.value
        elif payload.kind is PayloadKind.CHARACTER_CARD:
            chara = payload.value
        else:
            assets[payload.keyword[len(CARD_ASSET_PREFIX) :]] = payload.value
    return CardPayloads(ccv3=ccv3, chara=chara, assets=assets)


def extract_character_data(buffer: bytes, settings: CodecSettings | None = None) -> CharacterCard | None:
    """Return the canonical card embedded in a PNG, preferring ``ccv3`` over ``chara``."""

    payloads = read_card_payloads(buffer, settings)
    if payloads.diverged:
        LOGGER.warning(
            "ccv3 and chara chunks carry different cards (%r vs %r); using ccv3",
            payloads.ccv3.get("name") if payloads.ccv3 else None,
            payloads.chara.get("name") if payloads.chara else None,
        )
    raw = payloads.preferred
    if raw is None:
        LOGGER.debug("No decodable character card chunk found")
        return None
    return map_to_character_card(raw)


def extract_card_assets(buffer: bytes, settings: CodecSettings | None = None) -> dict[str, str]:
    """Return CCv3 embedded assets keyed by their asset path."""

    return read_card_payloads(buffer, settings).assets


def has_character_data(buffer: bytes, settings: CodecSettings | None = None) -> bool:
    try:
        return read_card_payloads(buffer, settings).preferred is not None
    except CodecError as exc:
        LOGGER.debug("Character data check failed: %s", exc)
        return False


def _prompt_records(buffer: bytes, settings: CodecSettings | None) -> list[ChunkRecord]:
    if is_valid_png(buffer):
        return read_text_records(buffer, settings)
    if is_valid_jpeg(buffer):
        # Later packets override fields of earlier ones once dispatched.
        return [ChunkRecord(kind="APP1", keyword=XMP_KEYWORD, text=packet) for packet in find_jpeg_xmp_packets(buffer)]
    raise InvalidSignature("Buffer is neither a PNG nor a JPEG", offset=0)


def extract_prompt_metadata(buffer: bytes, settings: CodecSettings | None = None) -> PromptMetadata | None:
    """Aggregate generation metadata from PNG text chunks or JPEG XMP.

    Returns ``None`` when nothing meaningful was found. Raises
    :class:`InvalidSignature` when *buffer* is neither PNG nor JPEG.
    """

    fields: dict[str, Any] = {}
    raw_data: dict[str, str] = {}

    for payload in dispatch_records(_prompt_records(buffer, settings), verbatim_kinds=_PROMPT_VERBATIM_KINDS):
        if payload.kind in (PayloadKind.PARAMETERS, PayloadKind.XMP):
            fields.update(payload.value)
        elif payload.kind is PayloadKind.WORKFLOW:
            fields["workflow"] = payload.value
        elif payload.kind is PayloadKind.SOFTWARE:
            fields["software"] = payload.value
        elif payload.kind is PayloadKind.SOURCE_URL:
            fields["source_url"] = payload.value
        else:
            raw_data[payload.keyword] = payload.value

    metadata = build_prompt_metadata(fields, raw_data)
    if not is_valid_prompt_metadata(metadata):
        LOGGER.debug("No meaningful prompt metadata found")
        return None
    return metadata


def has_prompt_data(buffer: bytes, settings: CodecSettings | None = None) -> bool:
    try:
        return extract_prompt_metadata(buffer, settings) is not None
    except CodecError as exc:
        LOGGER.debug("Prompt data check failed: %s", exc)
        return False
