"""Base64 + JSON payloads carried under the ``chara`` and ``ccv3`` keywords."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from aideer.codec.errors import PayloadDecodeError


def decode_base64_json(text: str, *, keyword: str) -> Any:
    """Decode a Base64-wrapped UTF-8 JSON document."""

    compact = "".join(text.split())
    compact += "=" * (-len(compact) % 4)
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDecodeError(f"Invalid Base64 payload: {exc}", keyword=keyword) from exc

    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise PayloadDecodeError(f"Payload is not UTF-8: {exc}", keyword=keyword) from exc
    except json.JSONDecodeError as exc:
        raise PayloadDecodeError(f"Invalid JSON payload: {exc}", keyword=keyword) from exc
    except RecursionError as exc:
        raise PayloadDecodeError("JSON payload is nested too deeply", keyword=keyword) from exc


def decode_card_payload(text: str, *, keyword: str) -> dict[str, Any]:
    """Decode a card chunk and unwrap the CCv2/CCv3 envelope when present."""

    document = decode_base64_json(text, keyword=keyword)
    if not isinstance(document, dict):
        raise PayloadDecodeError("Card payload is not a JSON object", keyword=keyword)

    data = document.get("data")
    if isinstance(data, dict):
        return data
    return document


def encode_card_envelope(card_data: dict[str, Any]) -> str:
    """Wrap card fields in a CCv2 envelope and Base64-encode the JSON."""

    envelope = {"spec": "chara_card_v2", "spec_version": "2.0", "data": card_data}
    serialized = json.dumps(envelope, ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(serialized.encode("utf-8")).decode("ascii")
