"""Canonical records produced and consumed by the metadata codec."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from aideer.codec.crc import chunk_crc

TEXT_CHUNK_TYPES = frozenset({"tEXt", "zTXt", "iTXt"})


@dataclass(frozen=True, slots=True)
class PngChunk:
    """One chunk located in a PNG buffer, text or not."""

    offset: int
    length: int
    chunk_type: str
    data: bytes
    crc: int

    @property
    def end(self) -> int:
        return self.offset + 12 + self.length

    @property
    def is_text(self) -> bool:
        return self.chunk_type in TEXT_CHUNK_TYPES

    def raw(self, buffer: bytes) -> bytes:
        """Original bytes of the whole chunk (length, type, data, CRC)."""

        return bytes(buffer[self.offset : self.end])

    def computed_crc(self) -> int:
        return chunk_crc(self.chunk_type.encode("latin-1"), self.data)


@dataclass(frozen=True, slots=True)
class ChunkRecord:
    """A decoded PNG text chunk, ready for keyword dispatch."""

    kind: str
    keyword: str
    text: str
    language_tag: str = ""
    translated_keyword: str = ""


class PayloadKind(Enum):
    CHARACTER_CARD = "chara"
    CHARACTER_CARD_V3 = "ccv3"
    CARD_ASSET = "card_asset"
    PARAMETERS = "parameters"
    WORKFLOW = "workflow"
    SOFTWARE = "software"
    SOURCE_URL = "source_url"
    XMP = "xmp"
    RAW = "raw"


@dataclass(frozen=True, slots=True)
class DecodedPayload:
    """Tagged dispatcher output: payload kind, originating keyword, decoded value."""

    kind: PayloadKind
    keyword: str
    value: Any


@dataclass(frozen=True, slots=True)
class CharacterBookEntry:
    keys: list[str] = field(default_factory=list)
    content: str = ""
    enabled: bool = True
    insertion_order: int = 0
    extensions: dict[str, Any] = field(default_factory=dict)
    case_sensitive: bool | None = None
    name: str | None = None
    priority: int | None = None
    id: int | str | None = None
    comment: str | None = None
    selective: bool | None = None
    secondary_keys: list[str] | None = None
    constant: bool | None = None
    position: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CharacterBook:
    name: str | None = None
    description: str | None = None
    scan_depth: int | None = None
    token_budget: int | None = None
    recursive_scanning: bool | None = None
    extensions: dict[str, Any] = field(default_factory=dict)
    entries: list[CharacterBookEntry] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CharacterCard:
    """Canonical character card; alias keys are reconciled before construction.

    ``extras`` holds keys that are not part of the canonical shape so vendor
    extensions survive a read/embed cycle.
    """

    name: str
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_mes: str = ""
    mes_example: str = ""
    creator_notes: str = ""
    system_prompt: str = ""
    post_history_instructions: str = ""
    alternate_greetings: list[str] = field(default_factory=list)
    character_book: CharacterBook | None = None
    tags: list[str] = field(default_factory=list)
    creator: str = ""
    character_version: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)
    gender: str = ""
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PromptMetadata:
    """Generation metadata aggregated from every classifiable chunk or segment."""

    prompt: str | None = None
    negative_prompt: str | None = None
    steps: int | None = None
    sampler: str | None = None
    cfg_scale: float | None = None
    seed: int | None = None
    size: str | None = None
    width: int | None = None
    height: int | None = None
    model: str | None = None
    model_hash: str | None = None
    denoising_strength: float | None = None
    clip_skip: int | None = None
    ensd: int | None = None
    workflow: Any = None
    software: str | None = None
    parameters: str | None = None
    xmp_data: str | None = None
    creator_tool: str | None = None
    description: str | None = None
    user_comment: Any = None
    source_url: str | None = None
    raw_data: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CardPayloads:
    """Raw card JSON found under each card keyword of one PNG."""

    ccv3: dict[str, Any] | None = None
    chara: dict[str, Any] | None = None
    assets: dict[str, str] = field(default_factory=dict)

    @property
    def preferred(self) -> dict[str, Any] | None:
        return self.ccv3 if self.ccv3 is not None else self.chara

    @property
    def diverged(self) -> bool:
        return self.ccv3 is not None and self.chara is not None and self.ccv3 != self.chara
