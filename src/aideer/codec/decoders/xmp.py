"""XMP packet decoding, including vendor prompt formats nested in XMP.

Draw Things stores its prompt and settings in ``dc:description`` and a JSON
document in ``exif:UserComment``; Mochi Diffusion writes an ``Include in
Image:`` description. The browser importer records the page origin as
``aideer:sourceUrl``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from lxml import etree

from aideer.codec.decoders.a1111 import apply_patterns, as_float, as_int, parse_size

LOGGER = logging.getLogger(__name__)

_DRAW_THINGS_SEPARATOR = "&#xA;"
_MOCHI_RE = re.compile(r"Include in Image:\s*(.+?)(?:\s+Generator:|$)", re.DOTALL)

DRAW_THINGS_PATTERNS = (
    ("steps", re.compile(r"Steps:\s*(\d+)"), int),
    ("sampler", re.compile(r"Sampler:\s*([^,]+)"), str),
    ("cfg_scale", re.compile(r"Guidance Scale:\s*([\d.]+)"), float),
    ("seed", re.compile(r"Seed:\s*(\d+)"), int),
    ("size", re.compile(r"Size:\s*(\d+x\d+)"), str),
    ("model", re.compile(r"Model:\s*([^,]+)"), str),
    ("denoising_strength", re.compile(r"Strength:\s*([\d.]+)"), float),
)

# UserComment short key -> (field, converter)
_USER_COMMENT_FIELDS = (
    ("c", "prompt", str),
    ("uc", "negative_prompt", str),
    ("steps", "steps", as_int),
    ("sampler", "sampler", str),
    ("scale", "cfg_scale", as_float),
    ("seed", "seed", as_int),
    ("size", "size", str),
    ("model", "model", str),
    ("strength", "denoising_strength", as_float),
)


def _xmp_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False, huge_tree=False)


def _first_text(nodes: list[Any]) -> str | None:
    for node in nodes:
        if hasattr(node, "itertext"):
            text = "".join(node.itertext()).strip()
        else:
            text = str(node).strip()
        if text:
            return text
    return None


def _alt_text(root: etree._Element, local_name: str) -> str | None:
    nodes = root.xpath(f"//*[local-name()='{local_name}']//*[local-name()='li']")
    # Plain elements carry the text directly instead of an rdf:Alt list.
    return _first_text(nodes) or _first_text(root.xpath(f"//*[local-name()='{local_name}']"))


def _creator_tool(root: etree._Element) -> str | None:
    return _first_text(root.xpath("//*[local-name()='CreatorTool']")) or _first_text(
        root.xpath("//@*[local-name()='CreatorTool']")
    )


def _source_url(root: etree._Element) -> str | None:
    predicate = "local-name()='source_url' or local-name()='sourceUrl'"
    return _first_text(root.xpath(f"//@*[{predicate}]")) or _first_text(root.xpath(f"//*[{predicate}]"))


def _split_draw_things(text: str) -> list[str]:
    # A conforming parser has already turned the entity into a newline.
    if _DRAW_THINGS_SEPARATOR in text:
        return text.split(_DRAW_THINGS_SEPARATOR)
    return text.split("\n")


def parse_description(text: str) -> dict[str, Any]:
    """Decode vendor prompt formats carried in an XMP description."""

    fields: dict[str, Any] = {}
    if "Steps:" in text and "Sampler:" in text:
        parts = _split_draw_things(text)
        if len(parts) >= 2:
            fields["prompt"] = parts[0].strip()
            negative = parts[1].strip()
            fields["negative_prompt"] = negative[1:].strip() if negative.startswith("-") else negative
            fields.update(apply_patterns("\n".join(parts[2:]), DRAW_THINGS_PATTERNS))
    elif "Include in Image:" in text:
        match = _MOCHI_RE.search(text)
        if match:
            fields["prompt"] = match.group(1).strip()
    return fields


def parse_user_comment(text: str) -> dict[str, Any]:
    """Map a Draw Things UserComment JSON document onto prompt fields."""

    try:
        document = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        LOGGER.warning("UserComment is not usable JSON, keeping raw text: %s", exc)
        return {"user_comment": text}

    fields: dict[str, Any] = {"user_comment": document}
    if not isinstance(document, dict):
        return fields

    for short_key, field_name, convert in _USER_COMMENT_FIELDS:
        value = document.get(short_key)
        if not value:
            continue
        converted = convert(value)
        if converted is not None:
            fields[field_name] = converted

    dimensions = parse_size(fields.get("size"))
    if dimensions:
        fields["width"], fields["height"] = dimensions
    return fields


def parse_xmp(packet: str) -> dict[str, Any]:
    """Decode an XMP packet into prompt fields; never raises on bad XML."""

    fields: dict[str, Any] = {"xmp_data": packet}
    try:
        root = etree.fromstring(packet.strip().encode("utf-8"), parser=_xmp_parser())
    except (etree.XMLSyntaxError, ValueError) as exc:
        LOGGER.warning("XMP packet is not well-formed XML: %s", exc)
        return {"xmp_data": packet}
    if root is None:
        return fields

    creator_tool = _creator_tool(root)
    if creator_tool:
        fields["creator_tool"] = creator_tool
        fields["software"] = creator_tool

    description = _alt_text(root, "description")
    if description:
        fields["description"] = description
        fields.update(parse_description(description))

    user_comment = _alt_text(root, "UserComment")
    if user_comment:
        fields.update(parse_user_comment(user_comment))

    source_url = _source_url(root)
    if source_url:
        fields["source_url"] = source_url
    return fields
