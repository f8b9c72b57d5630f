"""CLI command that prints the card and prompt metadata embedded in an image."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from aideer.codec import CodecSettings, extract_card_assets, extract_character_data, extract_prompt_metadata
from aideer.codec.mapping import character_card_to_dict, prompt_metadata_to_dict
from aideer.codec.writer import detect_image_type


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show metadata embedded in a PNG or JPEG image")
    parser.add_argument("--path", required=True, help="Image file to inspect")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--card-only", action="store_true", help="Only extract the character card")
    scope.add_argument("--prompt-only", action="store_true", help="Only extract generation metadata")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = CodecSettings.from_env()
    except ValueError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2
    logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s", level=settings.log_level_value)

    source_path = Path(args.path)
    try:
        buffer = source_path.read_bytes()
    except OSError as exc:
        LOGGER.error("Failed to read %s: %s", source_path, exc)
        return 2

    image_format = detect_image_type(buffer)
    payload: dict[str, object] = {"path": str(source_path), "format": image_format}
    if image_format == "unknown":
        payload["error"] = "Unsupported image format"
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 1

    card = None
    assets: dict[str, str] = {}
    if image_format == "png" and not args.prompt_only:
        card = extract_character_data(buffer, settings)
        assets = extract_card_assets(buffer, settings)

    prompt = None
    if not args.card_only:
        prompt = extract_prompt_metadata(buffer, settings)

    payload["character_card"] = character_card_to_dict(card) if card else None
    payload["card_assets"] = sorted(assets)
    payload["prompt_metadata"] = prompt_metadata_to_dict(prompt) if prompt else None
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
