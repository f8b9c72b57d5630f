from __future__ import annotations

import base64
import json
import logging

import pytest

from aideer.codec.dispatch import classify_keyword, decode_payload, dispatch_records
from aideer.codec.errors import PayloadDecodeError
from aideer.codec.models import ChunkRecord, PayloadKind


def _record(keyword: str, text: str) -> ChunkRecord:
    return ChunkRecord(kind="tEXt", keyword=keyword, text=text)


def _b64_json(document: object) -> str:
    return base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")


def test_keywords_are_classified() -> None:
    assert classify_keyword("chara") is PayloadKind.CHARACTER_CARD
    assert classify_keyword("ccv3") is PayloadKind.CHARACTER_CARD_V3
    assert classify_keyword("parameters") is PayloadKind.PARAMETERS
    assert classify_keyword("workflow") is PayloadKind.WORKFLOW
    assert classify_keyword("Software") is PayloadKind.SOFTWARE
    assert classify_keyword("source_url") is PayloadKind.SOURCE_URL
    assert classify_keyword("XML:com.adobe.xmp") is PayloadKind.XMP
    assert classify_keyword("chara-ext-asset_:icons/main.png") is PayloadKind.CARD_ASSET
    assert classify_keyword("software") is PayloadKind.RAW
    assert classify_keyword("prompt") is PayloadKind.RAW


def test_card_payload_unwraps_envelope() -> None:
    text = _b64_json({"spec": "chara_card_v2", "spec_version": "2.0", "data": {"name": "Nia"}})

    payload = decode_payload(_record("chara", text))

    assert payload.kind is PayloadKind.CHARACTER_CARD
    assert payload.value == {"name": "Nia"}


def test_bare_card_payload_and_missing_padding() -> None:
    text = _b64_json({"name": "Bare"}).rstrip("=")

    assert decode_payload(_record("ccv3", text)).value == {"name": "Bare"}


def test_corrupt_card_raises_payload_decode_error() -> None:
    with pytest.raises(PayloadDecodeError) as excinfo:
        decode_payload(_record("chara", "!!!not base64!!!"))

    assert excinfo.value.keyword == "chara"

    with pytest.raises(PayloadDecodeError):
        decode_payload(_record("ccv3", base64.b64encode(b"{not json").decode("ascii")))

    with pytest.raises(PayloadDecodeError):
        decode_payload(_record("ccv3", _b64_json(["a", "list"])))


def test_verbatim_kinds_keep_text() -> None:
    payload = decode_payload(_record("chara", "abc"), verbatim_kinds=frozenset({PayloadKind.CHARACTER_CARD}))

    assert payload.value == "abc"


def test_dispatch_skips_corrupt_chunks_and_keeps_the_rest(caplog: pytest.LogCaptureFixture) -> None:
    records = [
        _record("workflow", "{broken"),
        _record("parameters", "a cat\nSteps: 5"),
        _record("Software", "ComfyUI"),
        _record("Comment", "hello"),
    ]

    with caplog.at_level(logging.WARNING):
        payloads = dispatch_records(records)

    assert [payload.kind for payload in payloads] == [PayloadKind.PARAMETERS, PayloadKind.SOFTWARE, PayloadKind.RAW]
    assert payloads[0].value["steps"] == 5
    assert payloads[2].value == "hello"
    assert "workflow" in caplog.text


def test_dispatch_filters_by_kind() -> None:
    records = [_record("parameters", "x"), _record("workflow", '{"a": 1}')]

    payloads = dispatch_records(records, kinds=frozenset({PayloadKind.WORKFLOW}))

    assert [(p.keyword, p.value) for p in payloads] == [("workflow", {"a": 1})]


def test_deeply_nested_json_is_a_decode_error() -> None:
    nested = "[" * 200000 + "]" * 200000

    with pytest.raises(PayloadDecodeError):
        decode_payload(_record("workflow", nested))
    with pytest.raises(PayloadDecodeError):
        decode_payload(_record("chara", base64.b64encode(nested.encode("ascii")).decode("ascii")))
