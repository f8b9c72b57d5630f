"""CLI command that records a page-origin URL inside a PNG or JPEG."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from aideer.codec import CodecError, CodecSettings, stamp_source_url


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stamp a source URL into image metadata")
    parser.add_argument("--image", required=True, help="Source PNG or JPEG image")
    parser.add_argument("--url", required=True, help="Page URL the image came from")
    parser.add_argument("--output", required=True, help="Destination image path")
    parser.add_argument("--mime-type", default=None, help="Optional MIME type hint")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = CodecSettings.from_env()
    except ValueError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2
    logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s", level=settings.log_level_value)

    image_path = Path(args.image)
    try:
        image_bytes = image_path.read_bytes()
    except OSError as exc:
        LOGGER.error("Failed to read %s: %s", image_path, exc)
        return 2

    try:
        stamped = stamp_source_url(image_bytes, args.url, mime_type=args.mime_type)
    except CodecError as exc:
        LOGGER.error("Cannot stamp %s: %s", image_path, exc)
        return 1

    output_path = Path(args.output)
    try:
        output_path.write_bytes(stamped)
    except OSError as exc:
        LOGGER.error("Failed to write %s: %s", output_path, exc)
        return 2

    print(json.dumps({"output": args.output, "source_url": args.url, "bytes": len(stamped)}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
