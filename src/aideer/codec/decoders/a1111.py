"""Free-text generation parameters in the A1111 web UI layout.

A parameters blob looks like::

    a cat sitting on a mat
    Negative prompt: blurry, low quality
    Steps: 20, Sampler: Euler a, CFG scale: 7, Seed: 42, Size: 512x768, Model: sd15

Lines up to ``Negative prompt:`` are the prompt, lines after it the negative
prompt, and the first line mentioning ``Steps:``, ``Sampler:`` or
``CFG scale:`` is the settings line. Anything after the settings line is
ignored.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable

_NEGATIVE_PREFIX = "Negative prompt:"
_SETTINGS_MARKERS = ("Steps:", "Sampler:", "CFG scale:")
_SIZE_RE = re.compile(r"(\d+)x(\d+)")

FieldPattern = tuple[str, re.Pattern[str], Callable[[str], Any]]

A1111_PATTERNS: tuple[FieldPattern, ...] = (
    ("steps", re.compile(r"Steps:\s*(\d+)"), int),
    ("sampler", re.compile(r"Sampler:\s*([^,]+)"), str),
    ("cfg_scale", re.compile(r"CFG scale:\s*([\d.]+)"), float),
    ("seed", re.compile(r"Seed:\s*(\d+)"), int),
    ("size", re.compile(r"Size:\s*(\d+x\d+)"), str),
    ("model", re.compile(r"Model:\s*([^,]+)"), str),
    ("model_hash", re.compile(r"Model hash:\s*([^,]+)"), str),
    ("denoising_strength", re.compile(r"Denoising strength:\s*([\d.]+)"), float),
    ("clip_skip", re.compile(r"Clip skip:\s*(\d+)"), int),
    ("ensd", re.compile(r"ENSD:\s*(\d+)"), int),
)


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_size(size: Any) -> tuple[int, int] | None:
    """Parse ``"WxH"`` into ``(width, height)``."""

    if not isinstance(size, str):
        return None
    match = _SIZE_RE.search(size)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def apply_patterns(text: str, patterns: tuple[FieldPattern, ...]) -> dict[str, Any]:
    """Extract each optional field whose pattern matches *text*."""

    fields: dict[str, Any] = {}
    for key, pattern, convert in patterns:
        match = pattern.search(text)
        if not match:
            continue
        try:
            fields[key] = convert(match.group(1).strip())
        except ValueError:
            continue

    dimensions = parse_size(fields.get("size"))
    if dimensions:
        fields["width"], fields["height"] = dimensions
    return fields


def parse_a1111_parameters(text: str) -> dict[str, Any]:
    """Split a parameters blob into prompt, negative prompt, and settings fields."""

    prompt_lines: list[str] = []
    negative_lines: list[str] = []
    settings_line = ""
    in_negative = False

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if line.startswith(_NEGATIVE_PREFIX):
            in_negative = True
            line = line[len(_NEGATIVE_PREFIX) :].strip()
        elif any(marker in line for marker in _SETTINGS_MARKERS):
            settings_line = line
            break

        if not line:
            continue
        if in_negative:
            negative_lines.append(line)
        else:
            prompt_lines.append(line)

    fields: dict[str, Any] = {"parameters": text, "prompt": " ".join(prompt_lines).strip()}
    negative = " ".join(negative_lines).strip()
    if negative:
        fields["negative_prompt"] = negative
    if settings_line:
        fields.update(apply_patterns(settings_line, A1111_PATTERNS))
    return fields
