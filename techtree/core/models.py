from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

CostKind = Literal["gold", "jp", "item", "weapon", "armor"]
InventoryKind = Literal["item", "weapon", "armor"]
NodeState = Literal["hidden", "inactive", "unlockable", "active"]

STAT_SLOT_COUNT = 8
STAT_NAMES: tuple[str, ...] = ("mhp", "mmp", "atk", "def", "mat", "mdf", "agi", "luk")
COST_KINDS: tuple[CostKind, ...] = ("gold", "jp", "item", "weapon", "armor")


class CatalogModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SwitchRef(CatalogModel):
    id: int = Field(ge=1)


class SwitchToggle(CatalogModel):
    id: int = Field(ge=1)
    value: bool = True


class CostEntry(CatalogModel):
    id: int = Field(ge=1)
    amount: int = Field(default=1, ge=0)


class NodeCosts(CatalogModel):
    gold: int = Field(default=0, ge=0)
    jp: int = Field(default=0, ge=0)
    items: tuple[CostEntry, ...] = ()
    weapons: tuple[CostEntry, ...] = ()
    armors: tuple[CostEntry, ...] = ()

    def entries(self, kind: CostKind) -> tuple[CostEntry, ...]:
        if kind == "item":
            return self.items
        if kind == "weapon":
            return self.weapons
        if kind == "armor":
            return self.armors
        return ()


class TriggeredEvent(CatalogModel):
    id: int = Field(ge=1)
    close: bool = False


class ScriptHooks(CatalogModel):
    on_activate: str | None = Field(default=None, alias="onActivate")
    on_deactivate: str | None = Field(default=None, alias="onDeactivate")

    @field_validator("on_activate", "on_deactivate", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AnimationRef(CatalogModel):
    id: int | None = None


class NodeEffects(CatalogModel):
    switches: tuple[SwitchToggle, ...] = ()
    skills: tuple[int, ...] = ()
    events: tuple[TriggeredEvent, ...] = Field(default=(), alias="commonevents")
    stats: dict[int, int] = Field(default_factory=dict)
    scripts: ScriptHooks = Field(default_factory=ScriptHooks, alias="eval")
    animation: AnimationRef | None = None

    @field_validator("stats")
    @classmethod
    def validate_stats(cls, stats: dict[int, int]) -> dict[int, int]:
        for slot in stats:
            if slot < 0 or slot >= STAT_SLOT_COUNT:
                raise ValueError(f"Stat slot {slot} is outside 0..{STAT_SLOT_COUNT - 1}.")
        return {slot: delta for slot, delta in sorted(stats.items()) if delta}


class Visibility(CatalogModel):
    switches: tuple[SwitchRef, ...] = ()

    @property
    def required_switch_ids(self) -> frozenset[int]:
        return frozenset(ref.id for ref in self.switches)


class NodeDefinition(CatalogModel):
    uid: str = Field(min_length=1)
    depth: int = Field(ge=1)
    lane: int = Field(ge=1)
    header: str = ""
    description: str = Field(default="", alias="tech_description")
    bgimg: str | None = None
    icon: int | None = None
    parent_ids: tuple[str, ...] = Field(default=(), alias="parents")
    needed_parents: int = Field(default=0, alias="neededParents", ge=0)
    level_requirement: int | None = Field(default=None, alias="levelRequirement", ge=0)
    visibility: Visibility = Field(default_factory=Visibility)
    costs: NodeCosts = Field(default_factory=NodeCosts)
    on_activate: NodeEffects = Field(default_factory=NodeEffects, alias="onActivate")

    @model_validator(mode="before")
    @classmethod
    def unwrap_technode(cls, data: Any) -> Any:
        if isinstance(data, dict) and set(data) == {"technode"}:
            return data["technode"]
        return data

    @field_validator("parent_ids", mode="before")
    @classmethod
    def normalize_parents(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        parents: list[Any] = []
        for entry in value:
            if isinstance(entry, dict):
                parents.append(entry.get("parent"))
            else:
                parents.append(entry)
        return parents

    @property
    def position(self) -> tuple[int, int]:
        return self.depth, self.lane


class TreeDefinition(CatalogModel):
    uid: str = Field(min_length=1)
    header: str = ""
    description: str = Field(default="", alias="tech_description")
    icon: int | None = None
    bgimg: str | None = None
    nodes: tuple[NodeDefinition, ...] = ()
    hide_gold_cost: bool = Field(default=False, alias="hideGoldCost")
    hide_jp_cost: bool = Field(default=False, alias="hideJPCost")
    cost_items: tuple[int, ...] = Field(default=(), alias="costItems")
    animation: AnimationRef | None = None


class CatalogBindings(CatalogModel):
    actors: dict[int, tuple[str, ...]] = Field(default_factory=dict)
    classes: dict[int, tuple[str, ...]] = Field(default_factory=dict)


class CharacterOwned(StrictModel):
    kind: Literal["character"] = "character"

    @property
    def class_id(self) -> int | None:
        return None


class ClassOwned(StrictModel):
    kind: Literal["class"] = "class"
    class_id: int = Field(alias="classId", ge=1)


TreeOrigin = Annotated[CharacterOwned | ClassOwned, Field(discriminator="kind")]


class TreeInstance(StrictModel):
    tree_uid: str = Field(alias="treeUid", min_length=1)
    origin: TreeOrigin = Field(default_factory=CharacterOwned)
    active_node_ids: set[str] = Field(default_factory=set, alias="activeNodeIds")

    @field_serializer("active_node_ids")
    def serialize_active(self, active: set[str]) -> list[str]:
        return sorted(active)

    @property
    def origin_class_id(self) -> int | None:
        return self.origin.class_id

    def is_active(self, node_uid: str) -> bool:
        return node_uid in self.active_node_ids

    def belongs_to(self, class_id: int) -> bool:
        origin_class_id = self.origin_class_id
        return origin_class_id is None or origin_class_id == class_id


class TechtreeProgress(StrictModel):
    trees: list[TreeInstance] = Field(default_factory=list)
    classes_initialized: set[int] = Field(default_factory=set, alias="classesInitialized")
    previous_class_id: int | None = Field(default=None, alias="previousClassId")
    last_active_snapshot: dict[str, list[str]] = Field(default_factory=dict, alias="lastActiveSnapshot")

    @field_serializer("classes_initialized")
    def serialize_classes(self, classes: set[int]) -> list[int]:
        return sorted(classes)

    def find(self, tree_uid: str, class_id: int | None = None) -> TreeInstance | None:
        """First instance of ``tree_uid``, preferring one that ``class_id`` owns."""
        matches = [instance for instance in self.trees if instance.tree_uid == tree_uid]
        if class_id is not None:
            for instance in matches:
                if instance.belongs_to(class_id):
                    return instance
        return matches[0] if matches else None

    def owned(self, class_id: int) -> list[TreeInstance]:
        return [instance for instance in self.trees if instance.belongs_to(class_id)]

    def snapshot_active(self) -> dict[str, list[str]]:
        return {instance.tree_uid: sorted(instance.active_node_ids) for instance in self.trees}
