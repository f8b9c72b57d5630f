"""Read and write application payloads embedded in PNG and JPEG metadata."""

from .api import (
    extract_card_assets,
    extract_character_data,
    extract_prompt_metadata,
    has_character_data,
    has_prompt_data,
    read_card_payloads,
)
from .config import CodecSettings
from .errors import (
    ChecksumMismatch,
    CodecError,
    InvalidSignature,
    MalformedKeywordTerminator,
    PayloadDecodeError,
    TruncatedChunk,
    UnsupportedCompression,
)
from .models import (
    CardPayloads,
    CharacterBook,
    CharacterBookEntry,
    CharacterCard,
    ChunkRecord,
    PromptMetadata,
)
from .reader import is_valid_jpeg, is_valid_png
from .writer import embed_character_data, stamp_source_url

__all__ = [
    "CardPayloads",
    "CharacterBook",
    "CharacterBookEntry",
    "CharacterCard",
    "ChecksumMismatch",
    "ChunkRecord",
    "CodecError",
    "CodecSettings",
    "InvalidSignature",
    "MalformedKeywordTerminator",
    "PayloadDecodeError",
    "PromptMetadata",
    "TruncatedChunk",
    "UnsupportedCompression",
    "embed_character_data",
    "extract_card_assets",
    "extract_character_data",
    "extract_prompt_metadata",
    "has_character_data",
    "has_prompt_data",
    "is_valid_jpeg",
    "is_valid_png",
    "read_card_payloads",
    "stamp_source_url",
]
