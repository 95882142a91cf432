"""
Room graph models - node/edge connectivity for one chapter.

The model's graph is never trusted to be symmetric; the orchestrator calls
RoomGraph.ensure_bidirectional() before any room content is requested.
"""

from enum import Enum

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from worldgen.models.config import CamelModel


class RoomKind(str, Enum):
    """Room kinds the game runtime understands"""
    CROSSROAD = "crossroad"         # navigation only
    INTERACTION = "interaction"     # NPC dialogue
    COMBAT = "combat"               # single enemy encounter

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]


# (min, max) exits per kind
EXIT_BUDGETS: dict[RoomKind, tuple[int, int]] = {
    RoomKind.CROSSROAD: (2, 4),
    RoomKind.INTERACTION: (1, 2),
    RoomKind.COMBAT: (1, 2),
}


class RoomNode(CamelModel):
    """One node of the room graph"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    room_id: str = ""
    room_name: str = ""
    room_type: str = RoomKind.CROSSROAD.value
    description: str = ""
    connects_to: list[str] = Field(default_factory=list)
    npcs: list[str] = Field(default_factory=list)
    enemy_id: str | None = None
    is_hub: bool = False

    @property
    def kind(self) -> RoomKind | None:
        try:
            return RoomKind(self.room_type)
        except ValueError:
            return None


class RoomGraph(CamelModel):
    """Connectivity description for one chapter's rooms"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    chapter_id: str = ""
    hub_room_id: str = ""
    entry_room_id: str = ""
    exit_room_id: str = ""
    rooms: list[RoomNode] = Field(default_factory=list)

    def get_room(self, room_id: str) -> RoomNode | None:
        for room in self.rooms:
            if room.room_id == room_id:
                return room
        return None

    @property
    def room_ids(self) -> list[str]:
        return [room.room_id for room in self.rooms]

    def edges(self) -> set[tuple[str, str]]:
        return {(room.room_id, target) for room in self.rooms for target in room.connects_to}

    def ensure_bidirectional(self) -> list[tuple[str, str]]:
        """
        Insert every missing reverse edge in place.

        If A lists B and B does not list A, A is appended to B's neighbours.
        Edges pointing at unknown rooms and self-loops are left alone (the
        validator reports those). Applying this twice changes nothing the
        second time.

        Returns:
            The (from, to) edges that were added.
        """
        by_id = {room.room_id: room for room in self.rooms}
        added: list[tuple[str, str]] = []

        for room in self.rooms:
            for target_id in list(room.connects_to):
                if target_id == room.room_id:
                    continue
                target = by_id.get(target_id)
                if target is None:
                    continue
                if room.room_id not in target.connects_to:
                    target.connects_to.append(room.room_id)
                    added.append((target_id, room.room_id))

        return added
