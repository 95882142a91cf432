"""
Shared pytest fixtures for worldgen tests.

This module provides:
- generation_config: a one-chapter, three-room run configuration
- chapter_one_documents / chapter_two_documents: canned, mutually
  consistent model responses for a small world
- world_responses: pattern -> response mapping for MockModelClient
- mock_model_client: MockModelClient answering with world_responses
- Custom markers for test categorization
"""

from __future__ import annotations

import json

import pytest

from tests.mocks.llm import MockModelClient
from worldgen.models.config import (
    GenerationSettings,
    ProviderConfig,
    WorldBrief,
    WorldGenerationConfig,
)


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end tests requiring real LLM"
    )


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def sample_brief() -> WorldBrief:
    """A small world brief for prompt and config tests."""
    return WorldBrief(
        world_name="Ashen Reach",
        theme="dark fantasy",
        tone="grim but hopeful",
        era="late iron age",
        setting_description="A frontier march buried under volcanic ash.",
        key_locations=["The Ashen Gate", "Cinder Keep"],
        major_factions=["Beacon Wardens", "Cinder Court"],
        main_conflict="The beacons that hold back the ash storms are going dark.",
        protagonist_role="a newly sworn warden",
        narrative_themes=["duty", "renewal"],
        writing_style="terse, sensory",
        dialogue_tone="weary and wry",
    )


@pytest.fixture
def generation_config(sample_brief: WorldBrief) -> WorldGenerationConfig:
    """One chapter, three rooms, one main quest; no client-side delays."""
    return WorldGenerationConfig(
        world_id="ashen_reach",
        world_prompt=sample_brief,
        settings=GenerationSettings(
            total_chapters=1,
            locations_per_chapter=3,
            quests_per_chapter=1,
            main_quests_per_chapter=1,
            enemy_types_per_chapter=1,
            items_per_chapter=2,
            npcs_per_chapter=1,
        ),
        provider=ProviderConfig(
            provider="openai",
            model="gpt-4o",
            request_delay_ms=0,
            retry_delay_ms=0,
        ),
    )


# =============================================================================
# Canned Model Responses
# =============================================================================


@pytest.fixture
def chapter_one_documents() -> dict[str, dict]:
    """Chapter 1: a gate square hub, a smithy and a watchtower fight."""
    outline = {
        "chapterId": "chapter_1_ashen_gate",
        "chapterName": "The Ashen Gate",
        "chapterDescription": "The last beacon at the gate has gone dark.",
        "chapterIntro": "Ash falls like snow on the gate square.",
        "hubLocationId": "gate_square",
        "entryLocationId": "gate_square",
        "exitLocationId": "ruined_watchtower",
        "locations": [
            {"locationId": "gate_square", "locationName": "Gate Square", "locationType": "hub"},
            {"locationId": "smithy", "locationName": "The Smithy", "locationType": "hub"},
            {"locationId": "ruined_watchtower", "locationName": "Ruined Watchtower", "locationType": "dungeon"},
        ],
        "mainQuests": [{
            "questId": "light_the_beacon",
            "questName": "Light the Beacon",
            "description": "Rekindle the watchtower beacon.",
            "questGiver": "old_smith",
            "taskLocation": "ruined_watchtower",
            "difficulty": 2,
        }],
        "sideQuests": [],
        "keyNPCs": [{
            "npcId": "old_smith",
            "npcName": "Old Smith",
            "role": "quest_giver",
            "personality": "gruff",
            "locationId": "smithy",
        }],
        "enemies": [{
            "enemyId": "ash_wraith",
            "enemyName": "Ash Wraith",
            "enemyType": "undead",
            "challengeRating": 1,
            "description": "A shape of cinders and spite.",
        }],
    }
    graph = {
        "chapterId": "chapter_1_ashen_gate",
        "hubRoomId": "gate_square",
        "entryRoomId": "gate_square",
        "exitRoomId": "ruined_watchtower",
        "rooms": [
            {
                "roomId": "gate_square",
                "roomName": "Gate Square",
                "roomType": "crossroad",
                "description": "The square inside the gate.",
                "connectsTo": ["smithy", "ruined_watchtower"],
                "isHub": True,
            },
            {
                "roomId": "smithy",
                "roomName": "The Smithy",
                "roomType": "interaction",
                "description": "A forge that never cools.",
                "connectsTo": ["gate_square"],
                "npcs": ["old_smith"],
            },
            {
                "roomId": "ruined_watchtower",
                "roomName": "Ruined Watchtower",
                "roomType": "combat",
                "description": "A broken tower with a cold beacon.",
                "connectsTo": ["gate_square"],
                "enemyId": "ash_wraith",
            },
        ],
    }
    gate_square = {
        "room_id": "gate_square",
        "room_type": "crossroad",
        "description": "Ash drifts across the cobbles of the gate square.",
        "npcs": [],
        "items": [],
        "actions": [],
        "dialogues": [],
        "exits": [
            {"exit_name": "Smithy door", "leads_to": "smithy", "conditions": [], "conditions_not": []},
            {"exit_name": "Tower path", "leads_to": "ruined_watchtower", "conditions": [], "conditions_not": []},
        ],
        "combat": None,
        "events": [],
    }
    smithy = {
        "room_id": "smithy",
        "room_type": "interaction",
        "description": "The forge glows red in the gloom.",
        "npcs": ["old_smith"],
        "items": [],
        "actions": [{"action_id": "old_smith", "action_description": "Talk to Old Smith"}],
        "dialogues": [{
            "npc_name": "old_smith",
            "dialogue_image": "",
            "dialogues": [
                {"message": "The beacon's out. Go light it.", "responses": [
                    {"text": "Where is it?", "next_step": 1},
                    {"text": "Farewell.", "next_step": -1},
                ]},
                {"message": "Up the tower path.", "responses": [{"text": "Thanks.", "next_step": -1}]},
            ],
        }],
        "exits": [{"exit_name": "Back to the square", "leads_to": "gate_square", "conditions": [], "conditions_not": []}],
        "combat": None,
        "events": [],
    }
    ruined_watchtower = {
        "room_id": "ruined_watchtower",
        "room_type": "combat",
        "description": "Something made of ash uncoils beside the cold beacon.",
        "npcs": [],
        "items": [],
        "actions": [],
        "dialogues": [],
        "exits": [{"exit_name": "Down to the square", "leads_to": "gate_square", "conditions": [], "conditions_not": []}],
        "combat": {"enemyId": "ash_wraith", "isBoss": False, "defeatFlag": "ash_wraith_defeated"},
        "events": [],
    }
    quest = {
        "questId": "light_the_beacon",
        "questName": "Light the Beacon",
        "questDescription": "Climb the watchtower and rekindle the beacon.",
        "questGiver": "old_smith",
        "questGiverLocation": "smithy",
        "questType": "Main",
        "chapterNumber": 1,
        "difficulty": 2,
        "prerequisiteQuests": [],
        "prerequisiteFlags": [],
        "objectives": [
            {"objectiveId": "talk_smith", "description": "Hear the smith out", "type": "TalkToNPC",
             "targetId": "old_smith", "targetCount": 1, "isOptional": False},
            {"objectiveId": "reach_tower", "description": "Reach the tower", "type": "GoToRoom",
             "targetId": "ruined_watchtower", "targetCount": 1, "isOptional": False},
            {"objectiveId": "slay_wraith", "description": "Defeat the wraith", "type": "DefeatEnemy",
             "targetId": "ash_wraith", "targetCount": 1, "isOptional": False},
            {"objectiveId": "take_ember", "description": "Take the beacon ember", "type": "CollectItem",
             "targetId": "beacon_ember", "targetCount": 1, "isOptional": False},
        ],
        "revealsOnAccept": ["ruined_watchtower"],
        "revealsOnComplete": [],
        "rewards": {"experiencePoints": 100, "gold": 50, "itemIds": [], "flagsToSet": []},
        "state": "NotStarted",
    }
    enemy = {
        "enemyId": "ash_wraith",
        "enemyName": "Ash Wraith",
        "description": "A shape of cinders and spite.",
        "maxHitPoints": 35,
        "currentHitPoints": 35,
        "armorClass": 9,
        "experienceValue": 25,
        "goldDrop": 10,
        "attacks": [{"attackName": "Cinder Claw", "attackDescription": "Burning talons",
                     "damageMin": 2, "damageMax": 8, "hitBonus": 1}],
        "lootTable": [],
    }
    item = {
        "itemId": "beacon_ember",
        "shortDescription": "A coal that will not go out",
        "description": "It pulses warm in your palm.",
        "usageSuccess": "The beacon roars back to life.",
        "usageFail": "Nothing here will take the flame.",
        "category": "quest",
        "effectType": 4,
        "effectAmount": 0,
        "target": 3,
        "stacking": False,
        "maxStack": 1,
        "buyPrice": 0,
        "sellPrice": 0,
        "image": "",
        "combatUsable": False,
    }
    return {
        "outline": outline,
        "graph": graph,
        "gate_square": gate_square,
        "smithy": smithy,
        "ruined_watchtower": ruined_watchtower,
        "quest": quest,
        "enemy": enemy,
        "item": item,
    }


@pytest.fixture
def chapter_two_documents() -> dict[str, dict]:
    """Chapter 2: a road and a keep, continuing from chapter 1."""
    outline = {
        "chapterId": "chapter_2_cinder_keep",
        "chapterName": "Cinder Keep",
        "chapterDescription": "The road north leads to the keep of the Cinder Court.",
        "locations": [
            {"locationId": "ember_road", "locationName": "Ember Road", "locationType": "wilderness"},
            {"locationId": "cinder_keep", "locationName": "Cinder Keep", "locationType": "dungeon"},
        ],
        "mainQuests": [{
            "questId": "storm_the_keep",
            "questName": "Storm the Keep",
            "description": "Break the Cinder Court's hold.",
            "questGiver": "old_smith",
            "taskLocation": "cinder_keep",
            "difficulty": 4,
        }],
        "sideQuests": [],
        "keyNPCs": [],
        "enemies": [{
            "enemyId": "cinder_knight",
            "enemyName": "Cinder Knight",
            "enemyType": "construct",
            "challengeRating": 2,
        }],
    }
    graph = {
        "chapterId": "chapter_2_cinder_keep",
        "hubRoomId": "ember_road",
        "entryRoomId": "ember_road",
        "exitRoomId": "cinder_keep",
        "rooms": [
            {"roomId": "ember_road", "roomName": "Ember Road", "roomType": "crossroad",
             "connectsTo": ["cinder_keep"]},
            {"roomId": "cinder_keep", "roomName": "Cinder Keep", "roomType": "combat",
             "connectsTo": ["ember_road"], "enemyId": "cinder_knight"},
        ],
    }
    ember_road = {
        "room_id": "ember_road",
        "room_type": "crossroad",
        "description": "A road of packed cinders.",
        "exits": [{"exit_name": "North", "leads_to": "cinder_keep"}],
    }
    cinder_keep = {
        "room_id": "cinder_keep",
        "room_type": "combat",
        "description": "A knight of slag bars the gate.",
        "exits": [{"exit_name": "South", "leads_to": "ember_road"}],
        "combat": {"enemyId": "cinder_knight", "isBoss": True, "defeatFlag": "cinder_knight_defeated"},
    }
    quest = {
        "questId": "storm_the_keep",
        "questName": "Storm the Keep",
        "questGiver": "old_smith",
        "questGiverLocation": "ember_road",
        "questType": "Main",
        "chapterNumber": 2,
        "difficulty": 4,
        "prerequisiteQuests": ["light_the_beacon"],
        "objectives": [
            {"objectiveId": "defeat_knight", "description": "Defeat the knight", "type": "DefeatEnemy",
             "targetId": "cinder_knight"},
        ],
        "rewards": {"experiencePoints": 200, "gold": 100, "itemIds": []},
    }
    enemy = {
        "enemyId": "cinder_knight",
        "enemyName": "Cinder Knight",
        "maxHitPoints": 50,
        "currentHitPoints": 50,
        "armorClass": 10,
        "attacks": [{"attackName": "Slag Blade", "damageMin": 4, "damageMax": 11}],
    }
    return {
        "outline": outline,
        "graph": graph,
        "ember_road": ember_road,
        "cinder_keep": cinder_keep,
        "quest": quest,
        "enemy": enemy,
    }


@pytest.fixture
def world_responses(chapter_one_documents, chapter_two_documents) -> dict[str, str]:
    """Pattern -> raw response for every request the two chapters make."""
    one = chapter_one_documents
    two = chapter_two_documents
    return {
        "detailed outline for Chapter 1.": json.dumps(one["outline"]),
        "detailed outline for Chapter 2.": json.dumps(two["outline"]),
        "room connectivity graph for chapter: The Ashen Gate": json.dumps(one["graph"]),
        "room connectivity graph for chapter: Cinder Keep": json.dumps(two["graph"]),
        "Room ID: gate_square": json.dumps(one["gate_square"]),
        "Room ID: smithy": json.dumps(one["smithy"]),
        "Room ID: ruined_watchtower": json.dumps(one["ruined_watchtower"]),
        "Room ID: ember_road": json.dumps(two["ember_road"]),
        "Room ID: cinder_keep": json.dumps(two["cinder_keep"]),
        "complete quest JSON for: Light the Beacon": json.dumps(one["quest"]),
        "complete quest JSON for: Storm the Keep": json.dumps(two["quest"]),
        "complete enemy JSON for: Ash Wraith": json.dumps(one["enemy"]),
        "complete enemy JSON for: Cinder Knight": json.dumps(two["enemy"]),
        # Fenced on purpose: fences must be stripped before parsing
        "complete item JSON for: beacon_ember": "```json\n" + json.dumps(one["item"]) + "\n```",
    }


@pytest.fixture
def mock_model_client(world_responses) -> MockModelClient:
    """Mock model client answering every request of the canned world."""
    return MockModelClient(dict(world_responses))
