from __future__ import annotations

import json
from pathlib import Path
import struct
import zlib

from aideer.cli.embed_card import main as embed_card_main
from aideer.cli.inspect_image import main as inspect_image_main
from aideer.cli.stamp_source import main as stamp_source_main

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def _chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def _write_png(path: Path, *extra: bytes) -> None:
    ihdr = _chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0))
    idat = _chunk(b"IDAT", zlib.compress(b"\x00\x10\x20\x30"))
    path.write_bytes(_PNG_SIGNATURE + ihdr + b"".join(extra) + idat + _chunk(b"IEND", b""))


def test_embed_then_inspect_round_trip(tmp_path: Path, capsys: object) -> None:
    image = tmp_path / "portrait.png"
    _write_png(image, _chunk(b"tEXt", b"parameters\x00a knight in armor\nSteps: 30, Sampler: DDIM, Seed: 7"))
    card_path = tmp_path / "card.json"
    card_path.write_text(
        json.dumps(
            {
                "spec": "chara_card_v2",
                "spec_version": "2.0",
                "data": {"name": "Sir Gale", "description": "Knight of the west", "tags": ["knight"]},
            }
        ),
        encoding="utf-8",
    )
    output = tmp_path / "out.png"

    assert embed_card_main(["--image", str(image), "--card", str(card_path), "--output", str(output)]) == 0
    embedded = json.loads(capsys.readouterr().out)
    assert embedded["name"] == "Sir Gale"
    assert embedded["bytes"] == output.stat().st_size

    assert inspect_image_main(["--path", str(output)]) == 0
    payload = json.loads(capsys.readouterr().out)

    assert payload["format"] == "png"
    assert payload["character_card"]["name"] == "Sir Gale"
    assert payload["character_card"]["description"] == "Knight of the west"
    assert payload["card_assets"] == []
    assert payload["prompt_metadata"]["prompt"] == "a knight in armor"
    assert payload["prompt_metadata"]["steps"] == 30
    assert payload["prompt_metadata"]["seed"] == 7


def test_inspect_card_only_skips_prompt(tmp_path: Path, capsys: object) -> None:
    image = tmp_path / "plain.png"
    _write_png(image, _chunk(b"tEXt", b"parameters\x00a lake"))

    assert inspect_image_main(["--path", str(image), "--card-only"]) == 0
    payload = json.loads(capsys.readouterr().out)

    assert payload["character_card"] is None
    assert payload["prompt_metadata"] is None


def test_inspect_reports_unsupported_format(tmp_path: Path, capsys: object) -> None:
    image = tmp_path / "anim.gif"
    image.write_bytes(b"GIF89a\x01\x00\x01\x00")

    assert inspect_image_main(["--path", str(image)]) == 1
    payload = json.loads(capsys.readouterr().out)

    assert payload["format"] == "unknown"
    assert "error" in payload


def test_inspect_missing_file_returns_2(tmp_path: Path) -> None:
    assert inspect_image_main(["--path", str(tmp_path / "missing.png")]) == 2


def test_embed_rejects_nameless_card_and_non_png(tmp_path: Path) -> None:
    image = tmp_path / "image.png"
    _write_png(image)
    nameless = tmp_path / "nameless.json"
    nameless.write_text(json.dumps({"description": "no name"}), encoding="utf-8")
    named = tmp_path / "named.json"
    named.write_text(json.dumps({"name": "Ok"}), encoding="utf-8")
    jpeg = tmp_path / "photo.jpg"
    jpeg.write_bytes(b"\xff\xd8\xff\xd9")
    output = tmp_path / "out.png"

    assert embed_card_main(["--image", str(image), "--card", str(nameless), "--output", str(output)]) == 2
    assert embed_card_main(["--image", str(jpeg), "--card", str(named), "--output", str(output)]) == 1
    assert not output.exists()


def test_stamp_jpeg_then_inspect(tmp_path: Path, capsys: object) -> None:
    jpeg = tmp_path / "photo.jpg"
    jpeg.write_bytes(b"\xff\xd8\xff\xda\x00\x04\x00\x00\x55\xff\xd9")
    output = tmp_path / "stamped.jpg"

    exit_code = stamp_source_main(
        ["--image", str(jpeg), "--url", "https://example.com/gallery/42", "--output", str(output)]
    )
    stamped = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert stamped["source_url"] == "https://example.com/gallery/42"

    assert inspect_image_main(["--path", str(output), "--prompt-only"]) == 0
    payload = json.loads(capsys.readouterr().out)

    assert payload["format"] == "jpeg"
    assert payload["character_card"] is None
    assert payload["prompt_metadata"]["source_url"] == "https://example.com/gallery/42"


def test_stamp_rejects_unknown_format(tmp_path: Path) -> None:
    image = tmp_path / "anim.gif"
    image.write_bytes(b"GIF89a")

    assert stamp_source_main(["--image", str(image), "--url", "https://x", "--output", str(tmp_path / "o")]) == 1


def test_unwritable_output_returns_2(tmp_path: Path) -> None:
    image = tmp_path / "image.png"
    _write_png(image)
    card_path = tmp_path / "card.json"
    card_path.write_text(json.dumps({"name": "Ok"}), encoding="utf-8")
    missing_dir = tmp_path / "missing" / "out.png"

    assert embed_card_main(["--image", str(image), "--card", str(card_path), "--output", str(missing_dir)]) == 2
    assert stamp_source_main(["--image", str(image), "--url", "https://x", "--output", str(missing_dir)]) == 2
    assert not missing_dir.exists()
