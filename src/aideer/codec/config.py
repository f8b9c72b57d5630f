"""Runtime configuration for the metadata codec and its CLI wrappers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Mapping


DEFAULT_MAX_INFLATE_BYTES = 8 * 1024 * 1024
DEFAULT_LOG_LEVEL = "WARNING"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})
_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


def _parse_bool(*, name: str, raw_value: str) -> bool:
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be one of: {', '.join(sorted(_TRUE_VALUES | _FALSE_VALUES))}")


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class CodecSettings:
    """Validated codec behavior switches.

    By default compressed text chunks are skipped and stored CRCs are
    trusted.
    """

    verify_crc: bool = False
    inflate_text_chunks: bool = False
    max_inflate_bytes: int = DEFAULT_MAX_INFLATE_BYTES
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CodecSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        verify_raw = source.get("AIDEER_VERIFY_CRC", "false").strip()
        inflate_raw = source.get("AIDEER_INFLATE_TEXT_CHUNKS", "false").strip()
        max_inflate_raw = source.get("AIDEER_MAX_INFLATE_BYTES", str(DEFAULT_MAX_INFLATE_BYTES)).strip()
        log_level = source.get("AIDEER_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()

        if not max_inflate_raw:
            raise ValueError("AIDEER_MAX_INFLATE_BYTES cannot be empty")
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"AIDEER_LOG_LEVEL must be one of: {', '.join(sorted(_LOG_LEVELS))}")

        return cls(
            verify_crc=_parse_bool(name="AIDEER_VERIFY_CRC", raw_value=verify_raw),
            inflate_text_chunks=_parse_bool(name="AIDEER_INFLATE_TEXT_CHUNKS", raw_value=inflate_raw),
            max_inflate_bytes=_parse_positive_int(name="AIDEER_MAX_INFLATE_BYTES", raw_value=max_inflate_raw),
            log_level=log_level,
        )
