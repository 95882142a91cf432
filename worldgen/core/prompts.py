"""
Prompt builders - one pure function per artifact kind.

Each builder renders the JSON skeleton the schema validator checks, built
from the same enums and constants, so what the model is asked for and what
is accepted cannot drift apart. Builders never touch the network or the
filesystem and return the same text for the same inputs.
"""

import json

from worldgen.models.artifacts import (
    END_DIALOGUE,
    ChapterArtifact,
    EffectTarget,
    EffectType,
    ItemCategory,
    ObjectiveType,
    QuestType,
)
from worldgen.models.config import GenerationSettings, WorldBrief
from worldgen.models.graph import EXIT_BUDGETS, RoomGraph, RoomKind, RoomNode
from worldgen.models.outline import ChapterOutline, EnemySummary, QuestSummary

# Objective types offered to the model; SetFlag/UseItem/Custom are accepted
# by the validator but not suggested
PROMPTED_OBJECTIVES = [
    ObjectiveType.GO_TO_ROOM,
    ObjectiveType.TALK_TO_NPC,
    ObjectiveType.COLLECT_ITEM,
    ObjectiveType.DELIVER_ITEM,
    ObjectiveType.DEFEAT_ENEMY,
    ObjectiveType.DEFEAT_COUNT,
]

LOCATION_TYPES = ["hub", "exploration", "dungeon", "boss", "transition"]
NPC_ROLES = ["quest_giver", "merchant", "mentor", "antagonist", "citizen"]


def _json_block(skeleton: dict) -> str:
    return json.dumps(skeleton, indent=2, ensure_ascii=False)


def _section(title: str) -> str:
    return f"=== {title} ==="


def _join(lines: list[str]) -> str:
    return "\n".join(lines).strip() + "\n"


def system_prompt(brief: WorldBrief) -> str:
    """System prompt that establishes world context for every request"""
    lines = [
        "You are a world-building assistant for a text adventure game.",
        "Your task is to generate game content in valid JSON format.",
        "",
        _section("WORLD CONTEXT"),
        f"World Name: {brief.world_name}",
        f"Theme: {brief.theme}",
        f"Tone: {brief.tone}",
        f"Era: {brief.era}",
        f"Setting: {brief.setting_description}",
        f"Main Conflict: {brief.main_conflict}",
        f"Player Role: {brief.protagonist_role}",
        f"Writing Style: {brief.writing_style}",
        f"Dialogue Tone: {brief.dialogue_tone}",
    ]
    if brief.key_locations:
        lines.append(f"Key Locations: {', '.join(brief.key_locations)}")
    if brief.major_factions:
        lines.append(f"Major Factions: {', '.join(brief.major_factions)}")
    if brief.narrative_themes:
        lines.append(f"Narrative Themes: {', '.join(brief.narrative_themes)}")
    for param in brief.custom_parameters:
        lines.append(f"{param.key}: {param.value}")

    lines += [
        "",
        _section("CRITICAL RULES"),
        "1. Output ONLY valid JSON - no markdown, no explanations, no code blocks",
        "2. Use snake_case for all IDs (e.g., 'haunted_mill', 'guard_captain')",
        "3. Descriptions should be atmospheric and match the tone",
        "4. NPC dialogue must reflect personality and world lore",
        "5. All location/quest/NPC references must use consistent IDs",
        "6. Combat encounters must match specified difficulty level",
    ]
    return _join(lines)


def chapter_outline_prompt(
    chapter_number: int,
    settings: GenerationSettings,
    previous: ChapterArtifact | None = None,
) -> str:
    hub, revealed, gated = settings.location_distribution()
    quest_skeleton = {
        "questId": "<snake_case_id>",
        "questName": "<quest name>",
        "description": "<quest summary>",
        "questGiver": "<npc_id>",
        "taskLocation": "<location_id>",
        "difficulty": "<1-10>",
    }
    skeleton = {
        "chapterId": f"chapter_{chapter_number}",
        "chapterName": "<evocative chapter name>",
        "chapterDescription": "<2-3 sentence summary>",
        "chapterIntro": "<opening narration when chapter starts>",
        "hubLocationId": "<main_hub_id>",
        "entryLocationId": "<entry_from_previous_chapter>",
        "exitLocationId": "<exit_to_next_chapter>",
        "locations": [{
            "locationId": "<snake_case_id>",
            "locationName": "<display name>",
            "locationType": "|".join(LOCATION_TYPES),
            "description": "<brief description>",
            "alwaysVisible": "true|false",
            "connectedTo": ["<other_location_ids>"],
        }],
        "mainQuests": [quest_skeleton],
        "sideQuests": ["<same format as mainQuests>"],
        "keyNPCs": [{
            "npcId": "<snake_case_id>",
            "npcName": "<display name>",
            "role": "|".join(NPC_ROLES),
            "personality": "<brief personality>",
            "locationId": "<where they are found>",
        }],
        "enemies": [{
            "enemyId": "<snake_case_id>",
            "enemyName": "<display name>",
            "enemyType": "<creature type>",
            "challengeRating": "<1-10>",
            "description": "<brief description>",
        }],
    }

    lines = [
        f"Generate a detailed outline for Chapter {chapter_number}.",
        "",
        _section("CHAPTER REQUIREMENTS"),
        f"- {settings.locations_per_chapter} major locations",
        f"- {settings.main_quests_per_chapter} main quests (required for progression)",
        f"- {settings.side_quests_per_chapter} side quests (optional)",
        f"- Base difficulty: {chapter_number * 2} (scale 1-10)",
        f"- {settings.enemy_types_per_chapter} enemy types",
        f"- {settings.npcs_per_chapter} key NPCs",
    ]
    if settings.allow_hard_side_quests:
        lines.append("- Some side quests may be harder than the chapter's base difficulty")
    lines += [
        "",
        _section("LOCATION DISTRIBUTION"),
        f"- {hub} hub locations (always accessible: towns, shops)",
        f"- {revealed} quest-revealed locations (discovered through quests)",
        f"- {gated} progression-gated locations (require main quest completion)",
    ]

    if previous is not None:
        lines += [
            "",
            _section("PREVIOUS CHAPTER CONTEXT"),
            f"Previous Chapter: {previous.chapter_name}",
            f"Summary: {previous.chapter_description}",
            f"Exit Location: {previous.exit_location_id}",
            "The new chapter should continue naturally from this point.",
        ]

    lines += ["", _section("OUTPUT FORMAT"), _json_block(skeleton)]
    return _join(lines)


def room_graph_prompt(outline: ChapterOutline) -> str:
    skeleton = {
        "chapterId": outline.chapter_id,
        "hubRoomId": "<main_hub_room_id>",
        "entryRoomId": "<entry_point_room_id>",
        "exitRoomId": "<exit_to_next_chapter_room_id>",
        "rooms": [{
            "roomId": "<snake_case_room_id>",
            "roomName": "<Display Name>",
            "roomType": "|".join(RoomKind.values()),
            "description": "<brief 1-sentence description for context>",
            "connectsTo": ["<other_room_ids>"],
            "npcs": ["<npc_ids_in_this_room>"],
            "enemyId": "<enemy_id_or_null>",
            "isHub": "true|false",
        }],
    }

    crossroad = EXIT_BUDGETS[RoomKind.CROSSROAD]
    interaction = EXIT_BUDGETS[RoomKind.INTERACTION]
    combat = EXIT_BUDGETS[RoomKind.COMBAT]

    lines = [
        f"Generate a room connectivity graph for chapter: {outline.chapter_name}",
        "",
        _section("CHAPTER LOCATIONS"),
    ]
    lines += [f"- {loc.location_id}: {loc.location_name} ({loc.location_type})" for loc in outline.locations]
    lines += ["", _section("KEY NPCs")]
    lines += [f"- {npc.npc_id}: {npc.npc_name} ({npc.role}) at {npc.location_id}" for npc in outline.key_npcs]
    if outline.enemies:
        lines += ["", _section("ENEMIES")]
        lines += [f"- {e.enemy_id}: {e.enemy_name} (CR {e.challenge_rating})" for e in outline.enemies]
    lines += [
        "",
        _section("ROOM TYPE DEFINITIONS"),
        f"1. '{RoomKind.CROSSROAD.value}' - Navigation hub with {crossroad[0]}-{crossroad[1]} exits. NO NPC dialogues, NO combat.",
        f"2. '{RoomKind.INTERACTION.value}' - NPC dialogue room with {interaction[0]}-{interaction[1]} exits. Contains NPCs to talk to.",
        f"3. '{RoomKind.COMBAT.value}' - Combat encounter room with {combat[0]}-{combat[1]} exits. Contains enemy.",
        "",
        _section("REQUIREMENTS"),
        "- Every location must have at least one room",
        "- Hub locations should have mostly crossroad rooms",
        "- Each NPC needs an interaction room where they can be found",
        "- Each combat room must set enemyId to one of the enemies listed above",
        "- All connections must be bidirectional (if A connects to B, B must connect to A)",
        "- hubRoomId, entryRoomId and exitRoomId must be roomIds from the rooms list",
        "- Use snake_case for all room IDs",
        "- Room IDs should follow pattern: locationId_descriptiveName (e.g., 'town_square_fountain', 'tavern_interior')",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def _room_header(kind_label: str, node: RoomNode) -> list[str]:
    return [
        f"Generate a {kind_label} room JSON for: {node.room_name}",
        "",
    ]


def _room_details(node: RoomNode, chapter: ChapterArtifact) -> list[str]:
    return [
        _section("ROOM DETAILS"),
        f"Room ID: {node.room_id}",
        f"Room Name: {node.room_name}",
        f"Brief Context: {node.description}",
        f"Chapter: {chapter.chapter_number} - {chapter.chapter_name}",
    ]


def _valid_exits(node: RoomNode, graph: RoomGraph) -> list[RoomNode]:
    exits = []
    for target_id in node.connects_to:
        target = graph.get_room(target_id)
        if target is not None:
            exits.append(target)
    return exits


def _exit_lines(exits: list[RoomNode]) -> list[str]:
    lines = [_section("VALID EXIT DESTINATIONS (use ONLY these room IDs)")]
    lines += [f"- {target.room_id}: {target.room_name}" for target in exits]
    return lines


def _exit_stub(target: RoomNode, conditions: list[str] | None = None) -> dict:
    return {
        "exit_name": f"<direction to {target.room_name}>",
        "leads_to": target.room_id,
        "conditions": conditions or [],
        "conditions_not": [],
    }


def crossroad_room_prompt(node: RoomNode, graph: RoomGraph, chapter: ChapterArtifact) -> str:
    """Navigation-only room: no NPCs, no dialogue, no combat"""
    exits = _valid_exits(node, graph)
    skeleton = {
        "room_id": node.room_id,
        "room_type": RoomKind.CROSSROAD.value,
        "description": "<rich atmospheric description with sensory details - what the player sees, hears, smells>",
        "npcs": [],
        "items": [],
        "actions": [],
        "dialogues": [],
        "exits": [_exit_stub(target) for target in exits],
        "combat": None,
        "events": [],
    }

    lines = _room_header("CROSSROAD (navigation)", node)
    lines += [
        _section("THIS IS A NAVIGATION ROOM"),
        "- NO NPC dialogues",
        "- NO combat",
        "- Focus on atmospheric description and navigation options",
        "",
    ]
    lines += _room_details(node, chapter) + [""]
    lines += _exit_lines(exits)
    lines += [
        "",
        _section("REQUIREMENTS"),
        "- Rich atmospheric description (2-3 paragraphs)",
        "- actions array should be EMPTY []",
        "- dialogues array should be EMPTY []",
        "- npcs array should be EMPTY []",
        f"- Exactly {len(exits)} exits using ONLY the room IDs listed above",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def _dialogue_stub(npc_id: str, personality: str) -> dict:
    def step(message: str, responses: list[tuple[str, int]]) -> dict:
        return {
            "message": message,
            "responses": [{"text": text, "next_step": nxt} for text, nxt in responses],
        }

    return {
        "npc_name": npc_id,
        "dialogue_image": "npc_default",
        "dialogues": [
            step(f"<{personality} greeting>", [("<option 1>", 1), ("<option 2>", 2), ("Farewell.", END_DIALOGUE)]),
            step("<response to option 1>", [("<continue>", 3), ("Farewell.", END_DIALOGUE)]),
            step("<response to option 2>", [("<continue>", 3), ("Farewell.", END_DIALOGUE)]),
            step("<deeper conversation>", [("<conclude>", END_DIALOGUE)]),
        ],
    }


def interaction_room_prompt(
    node: RoomNode,
    graph: RoomGraph,
    chapter: ChapterArtifact,
    outline: ChapterOutline | None = None,
) -> str:
    """Dialogue room: one action and one dialogue tree per NPC, ids identical"""
    exits = _valid_exits(node, graph)

    npc_lines = []
    actions = []
    dialogues = []
    for npc_id in node.npcs:
        npc = outline.find_npc(npc_id) if outline else None
        display_name = npc.npc_name if npc and npc.npc_name else npc_id
        personality = npc.personality if npc and npc.personality else "in-character"
        if npc:
            npc_lines.append(f"- {npc.npc_id}: {npc.npc_name} ({npc.role}) - {npc.personality}")
        else:
            npc_lines.append(f"- {npc_id}")
        actions.append({"action_id": npc_id, "action_description": f"Talk to {display_name}"})
        dialogues.append(_dialogue_stub(npc_id, personality))

    skeleton = {
        "room_id": node.room_id,
        "room_type": RoomKind.INTERACTION.value,
        "description": "<rich atmospheric description>",
        "npcs": list(node.npcs),
        "items": [],
        "actions": actions,
        "dialogues": dialogues,
        "exits": [_exit_stub(target) for target in exits],
        "combat": None,
        "events": [],
    }

    lines = _room_header("INTERACTION (NPC dialogue)", node)
    lines += [
        "!!! CRITICAL RULE !!!",
        "action_id MUST EXACTLY EQUAL npc_name for every dialogue.",
        "Every action needs a dialogue with the same id and every dialogue needs an action.",
        "",
    ]
    lines += _room_details(node, chapter) + [""]
    lines += [_section("NPCs IN THIS ROOM")] + npc_lines + [""]
    lines += _exit_lines(exits)
    lines += [
        "",
        _section("REQUIREMENTS"),
        "- Rich atmospheric description (2-3 paragraphs)",
        "- One action per NPC, action_id set to the NPC id",
        "- One dialogue tree per NPC, npc_name set to the same NPC id",
        f"- next_step is the index of the next dialogue step, or {END_DIALOGUE} to end the conversation",
        f"- Exactly {len(exits)} exits using ONLY the room IDs listed above",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def combat_room_prompt(
    node: RoomNode,
    graph: RoomGraph,
    chapter: ChapterArtifact,
    outline: ChapterOutline | None = None,
) -> str:
    """
    Combat room: the first exit (the way back) is always open, every other
    exit requires the enemy's defeat flag.
    """
    exits = _valid_exits(node, graph)
    enemy = outline.find_enemy(node.enemy_id) if outline and node.enemy_id else None
    enemy_id = (enemy.enemy_id if enemy else node.enemy_id) or ""
    defeat_flag = f"{enemy_id}_defeated"

    exit_stubs = [
        _exit_stub(target, None if index == 0 else [defeat_flag])
        for index, target in enumerate(exits)
    ]
    skeleton = {
        "room_id": node.room_id,
        "room_type": RoomKind.COMBAT.value,
        "description": "<tense atmospheric description - signs of danger, enemy presence>",
        "npcs": [],
        "items": [],
        "actions": [],
        "dialogues": [],
        "exits": exit_stubs,
        "combat": {"enemyId": enemy_id, "isBoss": False, "defeatFlag": defeat_flag},
        "events": [],
    }

    lines = _room_header("COMBAT (encounter)", node)
    lines += [
        _section("THIS IS A COMBAT ROOM"),
        "- Contains an enemy encounter",
        "- May have treasure/loot after combat",
        "- Usually 1-2 exits (back, and forward after victory)",
        "",
    ]
    lines += _room_details(node, chapter) + ["", _section("ENEMY")]
    if enemy:
        lines += [
            f"- {enemy.enemy_id}: {enemy.enemy_name} (CR {enemy.challenge_rating})",
            f"- Description: {enemy.description}",
        ]
    else:
        lines.append(f"- {enemy_id}")
    lines += [""] + _exit_lines(exits)
    lines += [
        "",
        _section("REQUIREMENTS"),
        "- Tense atmospheric description hinting at danger",
        "- actions array: EMPTY []",
        "- dialogues array: EMPTY []",
        "- combat field must reference the enemy",
        f"- Exactly {len(exits)} exits using ONLY the room IDs listed above",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def room_prompt(
    node: RoomNode,
    graph: RoomGraph,
    chapter: ChapterArtifact,
    outline: ChapterOutline | None = None,
) -> str:
    """Pick the kind-specific room prompt; unknown kinds fall back to crossroad"""
    kind = node.kind
    if kind == RoomKind.INTERACTION:
        return interaction_room_prompt(node, graph, chapter, outline)
    if kind == RoomKind.COMBAT:
        return combat_room_prompt(node, graph, chapter, outline)
    return crossroad_room_prompt(node, graph, chapter)


def quest_prompt(
    summary: QuestSummary,
    chapter: ChapterArtifact,
    is_main: bool,
    graph: RoomGraph | None = None,
    outline: ChapterOutline | None = None,
) -> str:
    quest_type = QuestType.MAIN if is_main else QuestType.SIDE
    skeleton = {
        "questId": summary.quest_id,
        "questName": summary.quest_name,
        "questDescription": "<engaging description>",
        "questGiver": summary.quest_giver,
        "questGiverLocation": "<room_id>",
        "questType": quest_type.value,
        "chapterNumber": chapter.chapter_number,
        "difficulty": summary.difficulty,
        "prerequisiteQuests": [],
        "prerequisiteFlags": [],
        "objectives": [{
            "objectiveId": "<objective_id>",
            "description": "<what player needs to do>",
            "type": "|".join(t.value for t in PROMPTED_OBJECTIVES),
            "targetId": "<target_room/npc/item/enemy_id>",
            "targetCount": 1,
            "isOptional": False,
        }],
        "revealsOnAccept": ["<room_ids_to_reveal>"],
        "revealsOnComplete": ["<room_ids_to_reveal>"],
        "rewards": {
            "experiencePoints": "<50-500 based on difficulty>",
            "gold": "<25-250 based on difficulty>",
            "itemIds": [],
            "flagsToSet": [{"flagName": f"quest_{summary.quest_id}_complete", "flagValue": True}],
        },
        "state": "NotStarted",
    }

    lines = [
        f"Generate a complete quest JSON for: {summary.quest_name}",
        "",
        _section("QUEST DETAILS"),
        f"ID: {summary.quest_id}",
        f"Type: {'MAIN QUEST (required for progression)' if is_main else 'Side Quest (optional)'}",
        f"Description: {summary.description}",
        f"Quest Giver: {summary.quest_giver}",
        f"Task Location: {summary.task_location}",
        f"Difficulty: {summary.difficulty}",
        f"Chapter: {chapter.chapter_number}",
        "",
        _section("REQUIREMENTS"),
        "- 2-4 meaningful objectives",
        "- Objectives should tell a mini-story",
        "- Rewards appropriate to difficulty",
        "- Item ids used in objectives or rewards must be snake_case; they are generated afterwards",
    ]
    if is_main:
        lines += [
            "- Should reveal new locations on completion",
            "- Critical to chapter narrative",
        ]

    if graph is not None:
        lines += ["", _section("VALID ROOM IDs (GoToRoom targets, questGiverLocation, reveals)")]
        lines += [f"- {room.room_id}: {room.room_name}" for room in graph.rooms]
    if outline is not None:
        if outline.key_npcs:
            lines += ["", _section("VALID NPC IDs (TalkToNPC targets)")]
            lines += [f"- {npc.npc_id}: {npc.npc_name}" for npc in outline.key_npcs]
        if outline.enemies:
            lines += ["", _section("VALID ENEMY IDs (DefeatEnemy/DefeatCount targets)")]
            lines += [f"- {e.enemy_id}: {e.enemy_name}" for e in outline.enemies]

    lines += [
        "",
        _section("OBJECTIVE TYPES"),
        ", ".join(t.value for t in PROMPTED_OBJECTIVES),
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def enemy_stats(challenge_rating: int) -> dict[str, int]:
    """Baseline stats for a challenge rating"""
    cr = challenge_rating
    return {
        "hp": 20 + cr * 15,
        "ac": 8 + cr,
        "damage": 5 + cr * 3,
        "experience": cr * 25,
        "gold": cr * 10,
    }


def enemy_prompt(summary: EnemySummary, chapter: ChapterArtifact) -> str:
    cr = summary.challenge_rating
    stats = enemy_stats(cr)
    skeleton = {
        "enemyId": summary.enemy_id,
        "enemyName": summary.enemy_name,
        "description": "<combat description>",
        "enemyImage": "enemy_default",
        "maxHitPoints": stats["hp"],
        "currentHitPoints": stats["hp"],
        "armorClass": stats["ac"],
        "experienceValue": stats["experience"],
        "goldDrop": stats["gold"],
        "attacks": [
            {
                "attackName": "<primary attack>",
                "attackDescription": "<flavor text>",
                "damageMin": stats["damage"] - 2,
                "damageMax": stats["damage"] + 2,
                "hitBonus": cr,
            },
            {
                "attackName": "<special attack>",
                "attackDescription": "<flavor text>",
                "damageMin": stats["damage"],
                "damageMax": stats["damage"] + 5,
                "hitBonus": cr - 1,
            },
        ],
        "lootTable": [{"itemId": "<snake_case_item_id>", "dropChance": 0.3}],
    }

    lines = [
        f"Generate a complete enemy JSON for: {summary.enemy_name}",
        "",
        _section("ENEMY DETAILS"),
        f"ID: {summary.enemy_id}",
        f"Type: {summary.enemy_type}",
        f"Challenge Rating: {cr}",
        f"Description: {summary.description}",
        f"Chapter CR range: {chapter.min_enemy_cr}-{chapter.max_enemy_cr}",
        "",
        _section("STAT GUIDELINES (based on CR)"),
        f"- HP: ~{stats['hp']} (range: {stats['hp'] - 10} to {stats['hp'] + 10})",
        f"- AC: ~{stats['ac']}",
        f"- Damage per attack: ~{stats['damage']}",
        "- damageMax must be greater than or equal to damageMin",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)


def item_prompt(item_id: str, chapter: ChapterArtifact, context: str = "") -> str:
    skeleton = {
        "itemId": item_id,
        "shortDescription": "<short display name>",
        "description": "<detailed description>",
        "usageSuccess": "<text shown when used successfully>",
        "usageFail": "<text shown when use fails>",
        "category": "|".join(c.value for c in ItemCategory),
        "effectType": 0,
        "effectAmount": 0,
        "target": EffectTarget.NONE.value,
        "stacking": False,
        "maxStack": 1,
        "buyPrice": "<gold value>",
        "sellPrice": "<half of buyPrice>",
        "image": "item_default",
        "combatUsable": False,
    }

    lines = [
        f"Generate a complete item JSON for: {item_id}",
        "",
        _section("ITEM DETAILS"),
        f"ID: {item_id}",
        f"Chapter: {chapter.chapter_number} - {chapter.chapter_name}",
    ]
    if context:
        lines.append(f"Used by: {context}")
    lines += [
        "",
        _section("FIELD VALUES"),
        "effectType: " + ", ".join(f"{e.value}={e.name.title().replace('_', '')}" for e in EffectType),
        "target: " + ", ".join(f"{t.value}={t.name.title()}" for t in EffectTarget),
        "- Prices must not be negative",
        "- If stacking is true, maxStack must be at least 1",
        "",
        _section("OUTPUT FORMAT"),
        _json_block(skeleton),
    ]
    return _join(lines)
