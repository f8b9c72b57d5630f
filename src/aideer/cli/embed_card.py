"""CLI command that writes a character card JSON file into a PNG."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from aideer.codec import CodecSettings, InvalidSignature, embed_character_data
from aideer.codec.mapping import map_to_character_card


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Embed a character card into a PNG image")
    parser.add_argument("--image", required=True, help="Source PNG image")
    parser.add_argument("--card", required=True, help="Card JSON (bare card or chara_card_v2/v3 envelope)")
    parser.add_argument("--output", required=True, help="Destination PNG path")
    return parser.parse_args(argv)


def _load_card_fields(card_path: Path) -> dict[str, object]:
    document = json.loads(card_path.read_text(encoding="utf-8"))
    if not isinstance(document, dict):
        raise ValueError("Card JSON must be an object")
    data = document.get("data")
    return data if isinstance(data, dict) else document


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = CodecSettings.from_env()
    except ValueError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2
    logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s", level=settings.log_level_value)

    image_path = Path(args.image)
    output_path = Path(args.output)
    try:
        image_bytes = image_path.read_bytes()
        card = map_to_character_card(_load_card_fields(Path(args.card)))
    except (OSError, ValueError) as exc:
        LOGGER.error("Failed to load inputs: %s", exc)
        return 2

    if not card.name:
        LOGGER.error("Card has no name: %s", args.card)
        return 2

    try:
        embedded = embed_character_data(image_bytes, card)
    except InvalidSignature as exc:
        LOGGER.error("Cannot embed into %s: %s", image_path, exc)
        return 1

    try:
        output_path.write_bytes(embedded)
    except OSError as exc:
        LOGGER.error("Failed to write %s: %s", output_path, exc)
        return 2

    print(
        json.dumps(
            {"output": str(output_path), "name": card.name, "bytes": len(embedded)},
            ensure_ascii=False,
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
