"""Host collaborators the engine talks to.

The runtime that embeds the engine owns actors, the party inventory, the
switch table and the event interpreter. The engine only sees them through the
protocols below. The in-memory models implement the same protocols and back the
CLI, the save files and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from pydantic import Field, field_validator

from .models import InventoryKind, StrictModel, TechtreeProgress


@runtime_checkable
class Actor(Protocol):
    actor_id: int
    name: str
    level: int
    class_id: int
    progress: TechtreeProgress

    def has_skill(self, skill_id: int) -> bool: ...

    def learn_skill(self, skill_id: int) -> None: ...

    def forget_skill(self, skill_id: int) -> None: ...

    def param_bonus(self, slot: int) -> int: ...

    def add_param(self, slot: int, delta: int) -> None: ...

    def jp(self, class_id: int | None = None) -> int: ...

    def gain_jp(self, amount: int, class_id: int | None = None) -> None: ...

    def lose_jp(self, amount: int, class_id: int | None = None) -> None: ...

    def change_class(self, class_id: int) -> None: ...


@runtime_checkable
class Party(Protocol):
    gold: int

    def gain_gold(self, amount: int) -> None: ...

    def lose_gold(self, amount: int) -> None: ...

    def num_items(self, kind: InventoryKind, item_id: int) -> int: ...

    def gain_item(self, kind: InventoryKind, item_id: int, amount: int) -> None: ...

    def lose_item(self, kind: InventoryKind, item_id: int, amount: int) -> None: ...


@runtime_checkable
class SwitchStore(Protocol):
    def value(self, switch_id: int) -> bool: ...

    def set_value(self, switch_id: int, value: bool) -> None: ...


@runtime_checkable
class EventDispatcher(Protocol):
    def reserve_common_event(self, event_id: int, close_ui: bool = False) -> None: ...


class ActorState(StrictModel):
    actor_id: int = Field(alias="actorId", ge=1)
    name: str = Field(min_length=1)
    level: int = Field(default=1, ge=1)
    class_id: int = Field(alias="classId", ge=1)
    skills: set[int] = Field(default_factory=set)
    param_plus: dict[int, int] = Field(default_factory=dict, alias="paramPlus")
    jp_by_class: dict[int, int] = Field(default_factory=dict, alias="jpByClass")
    progress: TechtreeProgress = Field(default_factory=TechtreeProgress)

    def has_skill(self, skill_id: int) -> bool:
        return skill_id in self.skills

    def learn_skill(self, skill_id: int) -> None:
        self.skills.add(skill_id)

    def forget_skill(self, skill_id: int) -> None:
        self.skills.discard(skill_id)

    def param_bonus(self, slot: int) -> int:
        return int(self.param_plus.get(slot, 0))

    def add_param(self, slot: int, delta: int) -> None:
        self.param_plus[slot] = self.param_bonus(slot) + int(delta)

    def jp(self, class_id: int | None = None) -> int:
        return int(self.jp_by_class.get(class_id or self.class_id, 0))

    def gain_jp(self, amount: int, class_id: int | None = None) -> None:
        target = class_id or self.class_id
        self.jp_by_class[target] = self.jp(target) + int(amount)

    def lose_jp(self, amount: int, class_id: int | None = None) -> None:
        target = class_id or self.class_id
        self.jp_by_class[target] = max(0, self.jp(target) - int(amount))

    def change_class(self, class_id: int) -> None:
        self.class_id = class_id


class PartyState(StrictModel):
    gold: int = Field(default=0, ge=0)
    items: dict[int, int] = Field(default_factory=dict)
    weapons: dict[int, int] = Field(default_factory=dict)
    armors: dict[int, int] = Field(default_factory=dict)

    @field_validator("items", "weapons", "armors")
    @classmethod
    def validate_counts(cls, counts: dict[int, int]) -> dict[int, int]:
        for item_id, qty in counts.items():
            if qty < 0:
                raise ValueError(f"Inventory quantity for '{item_id}' cannot be negative.")
        return counts

    def _bucket(self, kind: InventoryKind) -> dict[int, int]:
        if kind == "weapon":
            return self.weapons
        if kind == "armor":
            return self.armors
        return self.items

    def gain_gold(self, amount: int) -> None:
        self.gold = self.gold + int(amount)

    def lose_gold(self, amount: int) -> None:
        self.gold = max(0, self.gold - int(amount))

    def num_items(self, kind: InventoryKind, item_id: int) -> int:
        return int(self._bucket(kind).get(item_id, 0))

    def gain_item(self, kind: InventoryKind, item_id: int, amount: int) -> None:
        bucket = self._bucket(kind)
        bucket[item_id] = max(0, self.num_items(kind, item_id) + int(amount))

    def lose_item(self, kind: InventoryKind, item_id: int, amount: int) -> None:
        self.gain_item(kind, item_id, -int(amount))


class SwitchBoard(StrictModel):
    values: dict[int, bool] = Field(default_factory=dict)

    def value(self, switch_id: int) -> bool:
        return bool(self.values.get(switch_id, False))

    def set_value(self, switch_id: int, value: bool) -> None:
        self.values[switch_id] = bool(value)


@dataclass(slots=True)
class EventQueue:
    reserved: list[int] = field(default_factory=list)
    close_requested: bool = False

    def reserve_common_event(self, event_id: int, close_ui: bool = False) -> None:
        self.reserved.append(event_id)
        if close_ui:
            self.close_requested = True
