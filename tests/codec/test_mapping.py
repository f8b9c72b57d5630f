from __future__ import annotations

from aideer.codec.mapping import (
    build_prompt_metadata,
    character_card_to_dict,
    is_valid_prompt_metadata,
    map_to_character_card,
    prompt_metadata_to_dict,
)
from aideer.codec.models import CharacterCard, PromptMetadata


def test_legacy_aliases_are_reconciled_into_canonical_names() -> None:
    card = map_to_character_card(
        {
            "name": "Aria",
            "char_persona": "A wandering bard.",
            "world_scenario": "A tavern at the edge of the map.",
            "firstMes": "Welcome, traveler!",
            "example_dialogue": "<START>\n{{user}}: Hi",
            "creatorNotes": "Keep her cheerful.",
            "system": "Stay in character.",
            "postHistoryInstructions": "Be brief.",
            "alternateGreetings": ["Hello again!"],
            "characterVersion": "1.2",
        }
    )

    assert card.description == "A wandering bard."
    assert card.personality == "A wandering bard."
    assert card.scenario == "A tavern at the edge of the map."
    assert card.first_mes == "Welcome, traveler!"
    assert card.mes_example == "<START>\n{{user}}: Hi"
    assert card.creator_notes == "Keep her cheerful."
    assert card.system_prompt == "Stay in character."
    assert card.post_history_instructions == "Be brief."
    assert card.alternate_greetings == ["Hello again!"]
    assert card.character_version == "1.2"
    assert card.extras == {}


def test_canonical_name_wins_over_alias() -> None:
    card = map_to_character_card({"name": "Bo", "first_mes": "canonical", "firstMes": "legacy"})

    assert card.first_mes == "canonical"


def test_missing_fields_default_to_empty_values() -> None:
    card = map_to_character_card({"name": "Empty", "description": None, "tags": None})

    assert card.description == ""
    assert card.tags == []
    assert card.alternate_greetings == []
    assert card.extensions == {}
    assert card.character_book is None
    assert card.gender == ""


def test_unknown_keys_are_preserved_in_extras() -> None:
    card = map_to_character_card({"name": "Vee", "nickname": "V", "assets": [{"type": "icon", "uri": "ccdefault:"}]})

    assert card.extras == {"nickname": "V", "assets": [{"type": "icon", "uri": "ccdefault:"}]}
    data = character_card_to_dict(card)
    assert data["nickname"] == "V"
    assert data["assets"][0]["type"] == "icon"


def test_character_book_entries_are_normalized() -> None:
    card = map_to_character_card(
        {
            "name": "Lore",
            "character_book": {
                "name": "World",
                "scan_depth": 4,
                "entries": [
                    {"keys": ["castle"], "content": "An old keep.", "insertion_order": 3, "priority": 10, "id": 1},
                    {"keys": ["moat"], "content": "Deep water.", "enabled": False, "use_regex": True},
                    {"content": "No keys"},
                ],
            },
        }
    )

    book = card.character_book
    assert book is not None
    assert book.name == "World"
    assert book.scan_depth == 4
    assert book.token_budget is None
    assert book.extensions == {}
    first, second, third = book.entries
    assert first.enabled is True
    assert first.insertion_order == 3
    assert first.priority == 10
    assert first.id == 1
    assert first.extensions == {}
    assert second.enabled is False
    assert second.extras == {"use_regex": True}
    assert third.keys == []
    assert third.insertion_order == 0


def test_card_dict_round_trips_through_mapper() -> None:
    original = map_to_character_card(
        {
            "name": "Round",
            "tags": ["a", "b"],
            "extensions": {"depth_prompt": {"depth": 4}},
            "character_book": {"entries": [{"keys": ["k"], "content": "c", "selective": True}]},
            "vendor_field": 3,
        }
    )

    assert map_to_character_card(character_card_to_dict(original)) == original


def test_card_dict_omits_absent_book() -> None:
    data = character_card_to_dict(CharacterCard(name="Solo"))

    assert "character_book" not in data
    assert data["name"] == "Solo"
    assert data["alternate_greetings"] == []


def test_prompt_metadata_derives_dimensions_from_size() -> None:
    metadata = build_prompt_metadata({"size": "512x768", "width": 1, "height": 2, "steps": "20", "unknown": "x"})

    assert metadata.width == 512
    assert metadata.height == 768
    assert metadata.steps == 20
    assert "unknown" not in prompt_metadata_to_dict(metadata)


def test_validity_heuristic() -> None:
    assert not is_valid_prompt_metadata(PromptMetadata())
    assert not is_valid_prompt_metadata(PromptMetadata(raw_data={"Timestamp": "2024"}))
    assert not is_valid_prompt_metadata(PromptMetadata(raw_data={"Creation Date": "x", "Software": "GIMP"}))
    assert not is_valid_prompt_metadata(PromptMetadata(raw_data={"Title": "Unknown", "Author": ""}))
    assert not is_valid_prompt_metadata(PromptMetadata(prompt="   "))
    assert is_valid_prompt_metadata(PromptMetadata(source_url="https://x"))
    assert is_valid_prompt_metadata(PromptMetadata(raw_data={"Source_URL": "https://x"}))
    assert is_valid_prompt_metadata(PromptMetadata(raw_data={"Comment": "made with love"}))
    assert is_valid_prompt_metadata(PromptMetadata(prompt="a cat"))
    assert is_valid_prompt_metadata(PromptMetadata(negative_prompt="blurry"))
    assert is_valid_prompt_metadata(PromptMetadata(workflow={"nodes": []}))
    assert is_valid_prompt_metadata(PromptMetadata(seed=0))
    assert is_valid_prompt_metadata(PromptMetadata(parameters="Steps: 1"))


def test_infinite_insertion_order_falls_back_to_zero() -> None:
    card = map_to_character_card(
        {"name": "Inf", "character_book": {"entries": [{"keys": ["k"], "insertion_order": float("inf")}]}}
    )

    assert card.character_book is not None
    assert card.character_book.entries[0].insertion_order == 0


def test_off_type_book_fields_survive_a_round_trip() -> None:
    raw = {
        "name": "Odd",
        "character_book": {
            "scan_depth": "deep",
            "entries": [{"keys": ["k"], "content": "c", "position": 0, "priority": "high", "name": 5, "id": True}],
        },
    }

    card = map_to_character_card(raw)
    book = card.character_book
    assert book is not None
    entry = book.entries[0]
    assert (entry.position, entry.priority, entry.name, entry.id) == (None, None, None, None)
    assert entry.extras == {"position": 0, "priority": "high", "name": 5, "id": True}
    assert book.scan_depth is None
    assert book.extras == {"scan_depth": "deep"}

    data = character_card_to_dict(card)
    written_entry = data["character_book"]["entries"][0]
    assert written_entry["position"] == 0
    assert written_entry["priority"] == "high"
    assert written_entry["name"] == 5
    assert written_entry["id"] is True
    assert data["character_book"]["scan_depth"] == "deep"
    assert map_to_character_card(data) == card
