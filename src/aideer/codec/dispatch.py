"""Keyword classification and per-kind decoding of PNG text chunks."""

from __future__ import annotations

import logging
from typing import Iterable

from aideer.codec.decoders import decode_card_payload, decode_workflow, parse_a1111_parameters, parse_xmp
from aideer.codec.errors import PayloadDecodeError
from aideer.codec.models import ChunkRecord, DecodedPayload, PayloadKind

LOGGER = logging.getLogger(__name__)

CARD_ASSET_PREFIX = "chara-ext-asset_:"
XMP_KEYWORD = "XML:com.adobe.xmp"

CARD_KINDS = frozenset({PayloadKind.CHARACTER_CARD, PayloadKind.CHARACTER_CARD_V3})

_KEYWORD_KINDS: dict[str, PayloadKind] = {
    "chara": PayloadKind.CHARACTER_CARD,
    "ccv3": PayloadKind.CHARACTER_CARD_V3,
    "parameters": PayloadKind.PARAMETERS,
    "workflow": PayloadKind.WORKFLOW,
    "Software": PayloadKind.SOFTWARE,
    "source_url": PayloadKind.SOURCE_URL,
    XMP_KEYWORD: PayloadKind.XMP,
}


def classify_keyword(keyword: str) -> PayloadKind:
    """Return the payload kind for a text chunk keyword (case-sensitive)."""

    kind = _KEYWORD_KINDS.get(keyword)
    if kind is not None:
        return kind
    if keyword.startswith(CARD_ASSET_PREFIX):
        return PayloadKind.CARD_ASSET
    return PayloadKind.RAW


def decode_payload(
    record: ChunkRecord,
    *,
    verbatim_kinds: frozenset[PayloadKind] = frozenset(),
) -> DecodedPayload:
    """Decode one record according to its keyword.

    Kinds listed in *verbatim_kinds* keep the chunk text undecoded. Raises
    :class:`PayloadDecodeError` when the payload is corrupt.
    """

    kind = classify_keyword(record.keyword)
    if kind in verbatim_kinds or kind in (PayloadKind.RAW, PayloadKind.SOFTWARE, PayloadKind.SOURCE_URL):
        return DecodedPayload(kind=kind, keyword=record.keyword, value=record.text)

    if kind in CARD_KINDS:
        value = decode_card_payload(record.text, keyword=record.keyword)
    elif kind is PayloadKind.CARD_ASSET:
        value = record.text
    elif kind is PayloadKind.PARAMETERS:
        value = parse_a1111_parameters(record.text)
    elif kind is PayloadKind.WORKFLOW:
        value = decode_workflow(record.text, keyword=record.keyword)
    else:
        value = parse_xmp(record.text)
    return DecodedPayload(kind=kind, keyword=record.keyword, value=value)


def dispatch_records(
    records: Iterable[ChunkRecord],
    *,
    kinds: frozenset[PayloadKind] | None = None,
    verbatim_kinds: frozenset[PayloadKind] = frozenset(),
) -> list[DecodedPayload]:
    """Decode every record, dropping the ones that fail.

    One corrupt chunk never prevents the others from being decoded. When
    *kinds* is given, records of other kinds are not decoded at all.
    """

    payloads: list[DecodedPayload] = []
    for record in records:
        if kinds is not None and classify_keyword(record.keyword) not in kinds:
            continue
        try:
            payload = decode_payload(record, verbatim_kinds=verbatim_kinds)
        except PayloadDecodeError as exc:
            LOGGER.warning("Ignoring undecodable %s chunk: %s", record.kind, exc)
            continue
        payloads.append(payload)
    return payloads
