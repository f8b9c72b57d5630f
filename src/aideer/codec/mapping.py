"""Reconciliation of loosely typed payloads into the canonical records."""

from __future__ import annotations

from dataclasses import fields as dataclass_fields
from typing import Any, Callable, Mapping

from aideer.codec.decoders.a1111 import as_float, as_int, parse_size
from aideer.codec.models import CharacterBook, CharacterBookEntry, CharacterCard, PromptMetadata

# Canonical card field -> legacy keys, in lookup order after the canonical one.
_CARD_STRING_ALIASES: dict[str, tuple[str, ...]] = {
    "name": (),
    "description": ("char_persona",),
    "personality": ("fullDescription", "full_description", "char_persona"),
    "scenario": ("world_scenario",),
    "first_mes": ("firstMes",),
    "mes_example": ("exampleDialogue", "example_dialogue"),
    "creator_notes": ("creatorNotes",),
    "system_prompt": ("systemPrompt", "system"),
    "post_history_instructions": ("postHistoryInstructions",),
    "creator": (),
    "character_version": ("characterVersion",),
    "gender": (),
}
_CARD_LIST_ALIASES: dict[str, tuple[str, ...]] = {
    "alternate_greetings": ("alternateGreetings",),
    "tags": (),
}
_CARD_KNOWN_KEYS = frozenset(
    {
        *_CARD_STRING_ALIASES,
        *(alias for aliases in _CARD_STRING_ALIASES.values() for alias in aliases),
        *_CARD_LIST_ALIASES,
        *(alias for aliases in _CARD_LIST_ALIASES.values() for alias in aliases),
        "extensions",
        "character_book",
    }
)

_BOOK_KEYS = frozenset(
    {"name", "description", "scan_depth", "token_budget", "recursive_scanning", "extensions", "entries"}
)
_ENTRY_KEYS = frozenset(
    {
        "keys",
        "content",
        "enabled",
        "insertion_order",
        "extensions",
        "case_sensitive",
        "name",
        "priority",
        "id",
        "comment",
        "selective",
        "secondary_keys",
        "constant",
        "position",
    }
)

_PROMPT_FIELDS = frozenset(f.name for f in dataclass_fields(PromptMetadata))
_PROMPT_INT_FIELDS = frozenset({"steps", "seed", "width", "height", "clip_skip", "ensd"})
_PROMPT_FLOAT_FIELDS = frozenset({"cfg_scale", "denoising_strength"})
_PROMPT_OPAQUE_FIELDS = frozenset({"workflow", "user_comment", "raw_data"})
_MEANINGFUL_PARAMS = ("steps", "sampler", "cfg_scale", "seed", "model", "width", "height")
_TECHNICAL_KEY_PARTS = ("timestamp", "date", "version", "software")


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _first_present(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _as_optional_int(value: Any) -> int | None:
    return as_int(value) if isinstance(value, (int, float, str)) else None


def _as_optional_id(value: Any) -> int | str | None:
    return value if isinstance(value, (int, str)) and not isinstance(value, bool) else None


def _as_optional_str_list(value: Any) -> list[str] | None:
    return _as_str_list(value) if isinstance(value, list) else None


_ENTRY_OPTIONAL_FIELDS: dict[str, Callable[[Any], Any]] = {
    "case_sensitive": _as_optional_bool,
    "name": _as_optional_str,
    "priority": _as_optional_int,
    "id": _as_optional_id,
    "comment": _as_optional_str,
    "selective": _as_optional_bool,
    "secondary_keys": _as_optional_str_list,
    "constant": _as_optional_bool,
    "position": _as_optional_str,
}
_BOOK_OPTIONAL_FIELDS: dict[str, Callable[[Any], Any]] = {
    "name": _as_optional_str,
    "description": _as_optional_str,
    "scan_depth": _as_optional_int,
    "token_budget": _as_optional_int,
    "recursive_scanning": _as_optional_bool,
}


def _optional_fields(
    raw: Mapping[str, Any], converters: Mapping[str, Callable[[Any], Any]]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Convert optional keys; values of the wrong type are returned separately so they survive as extras."""

    values: dict[str, Any] = {}
    off_type: dict[str, Any] = {}
    for key, convert in converters.items():
        value = raw.get(key)
        converted = None if value is None else convert(value)
        if value is not None and converted is None:
            off_type[key] = value
        values[key] = converted
    return values, off_type


def map_book_entry(raw: Mapping[str, Any]) -> CharacterBookEntry:
    optional, off_type = _optional_fields(raw, _ENTRY_OPTIONAL_FIELDS)
    return CharacterBookEntry(
        keys=_as_str_list(raw.get("keys")),
        content=_as_str(raw.get("content")),
        enabled=raw.get("enabled") is not False,
        insertion_order=as_int(raw.get("insertion_order")) or 0,
        extensions=_as_dict(raw.get("extensions")),
        **optional,
        extras={**off_type, **{key: value for key, value in raw.items() if key not in _ENTRY_KEYS}},
    )


def map_character_book(raw: Mapping[str, Any]) -> CharacterBook:
    optional, off_type = _optional_fields(raw, _BOOK_OPTIONAL_FIELDS)
    entries = raw.get("entries")
    return CharacterBook(
        **optional,
        extensions=_as_dict(raw.get("extensions")),
        entries=[map_book_entry(entry) for entry in entries if isinstance(entry, Mapping)]
        if isinstance(entries, list)
        else [],
        extras={**off_type, **{key: value for key, value in raw.items() if key not in _BOOK_KEYS}},
    )


def map_to_character_card(raw: Mapping[str, Any]) -> CharacterCard:
    """Reconcile legacy and alias keys into a canonical :class:`CharacterCard`.

    The canonical key wins when it holds a non-empty value, otherwise the
    first non-empty alias is used. Alias keys are consumed; every other
    unknown key is kept in ``extras``.
    """

    strings = {
        name: _as_str(_first_present(raw, (name, *aliases))) for name, aliases in _CARD_STRING_ALIASES.items()
    }
    lists = {name: _as_str_list(_first_present(raw, (name, *aliases))) for name, aliases in _CARD_LIST_ALIASES.items()}
    book_raw = raw.get("character_book")

    return CharacterCard(
        **strings,
        **lists,
        extensions=_as_dict(raw.get("extensions")),
        character_book=map_character_book(book_raw) if isinstance(book_raw, Mapping) else None,
        extras={key: value for key, value in raw.items() if key not in _CARD_KNOWN_KEYS},
    )


def book_entry_to_dict(entry: CharacterBookEntry) -> dict[str, Any]:
    data: dict[str, Any] = {
        "keys": list(entry.keys),
        "content": entry.content,
        "extensions": dict(entry.extensions),
        "enabled": entry.enabled,
        "insertion_order": entry.insertion_order,
    }
    for key in _ENTRY_OPTIONAL_FIELDS:
        value = getattr(entry, key)
        if value is not None:
            data[key] = list(value) if isinstance(value, list) else value
    for key, value in entry.extras.items():
        data.setdefault(key, value)
    return data


def character_book_to_dict(book: CharacterBook) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key in _BOOK_OPTIONAL_FIELDS:
        value = getattr(book, key)
        if value is not None:
            data[key] = value
    data["extensions"] = dict(book.extensions)
    data["entries"] = [book_entry_to_dict(entry) for entry in book.entries]
    for key, value in book.extras.items():
        data.setdefault(key, value)
    return data


def character_card_to_dict(card: CharacterCard) -> dict[str, Any]:
    """Serialize a card to the canonical CCv2 ``data`` object."""

    data: dict[str, Any] = {
        "name": card.name,
        "description": card.description,
        "personality": card.personality,
        "scenario": card.scenario,
        "first_mes": card.first_mes,
        "mes_example": card.mes_example,
        "creator_notes": card.creator_notes,
        "system_prompt": card.system_prompt,
        "post_history_instructions": card.post_history_instructions,
        "alternate_greetings": list(card.alternate_greetings),
        "tags": list(card.tags),
        "creator": card.creator,
        "character_version": card.character_version,
        "extensions": dict(card.extensions),
        "gender": card.gender,
    }
    if card.character_book is not None:
        data["character_book"] = character_book_to_dict(card.character_book)
    for key, value in card.extras.items():
        if key not in _CARD_KNOWN_KEYS:
            data.setdefault(key, value)
    return data


def _coerce_prompt_field(name: str, value: Any) -> Any:
    if value is None or name in _PROMPT_OPAQUE_FIELDS:
        return value
    if name in _PROMPT_INT_FIELDS:
        return as_int(value)
    if name in _PROMPT_FLOAT_FIELDS:
        return as_float(value)
    return value if isinstance(value, str) else str(value)


def build_prompt_metadata(fields: Mapping[str, Any], raw_data: Mapping[str, str] | None = None) -> PromptMetadata:
    """Build a :class:`PromptMetadata`, deriving width and height from size."""

    values = {
        name: _coerce_prompt_field(name, value)
        for name, value in fields.items()
        if name in _PROMPT_FIELDS and name != "raw_data"
    }
    dimensions = parse_size(values.get("size"))
    if dimensions:
        values["width"], values["height"] = dimensions
    return PromptMetadata(**values, raw_data=dict(raw_data or {}))


def prompt_metadata_to_dict(metadata: PromptMetadata) -> dict[str, Any]:
    data = {
        f.name: getattr(metadata, f.name)
        for f in dataclass_fields(metadata)
        if f.name != "raw_data" and getattr(metadata, f.name) is not None
    }
    data["raw_data"] = dict(metadata.raw_data)
    return data


def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_meaningful_raw_key(key: str, value: Any) -> bool:
    if not value or value == "Unknown":
        return False
    lowered = key.lower()
    if lowered == "source_url":
        return True
    return not any(part in lowered for part in _TECHNICAL_KEY_PARTS)


def is_valid_prompt_metadata(metadata: PromptMetadata) -> bool:
    """Decide whether extraction found anything worth showing."""

    if _non_blank(metadata.prompt) or _non_blank(metadata.negative_prompt):
        return True
    if isinstance(metadata.workflow, (dict, list)):
        return True
    if _non_blank(metadata.parameters):
        return True
    for name in _MEANINGFUL_PARAMS:
        value = getattr(metadata, name)
        if value is not None and value != "":
            return True
    if _non_blank(metadata.source_url):
        return True
    return any(_is_meaningful_raw_key(key, value) for key, value in metadata.raw_data.items())
