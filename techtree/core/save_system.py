from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import Field

from .catalog import NodeCatalog
from .hosts import Actor
from .models import StrictModel, TechtreeProgress
from .progression import TechtreeService

logger = logging.getLogger(__name__)

SAVE_VERSION = 1


class TechtreeSaveData(StrictModel):
    save_version: int = SAVE_VERSION
    catalog_hash: str | None = Field(default=None, alias="catalogHash")
    actors: dict[int, TechtreeProgress] = Field(default_factory=dict)


def _coerce_dict(value: Any, default: dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {} if default is None else dict(default)


def _legacy_node_uid(entry: Any) -> str | None:
    node = _coerce_dict(entry)
    technode = _coerce_dict(node.get("technode"), default=node)
    uid = technode.get("uid")
    return str(uid) if uid else None


def _migrate_legacy_tree(raw: Any) -> dict[str, Any] | None:
    tree = _coerce_dict(raw)
    uid = tree.get("uid")
    if not uid:
        return None
    active = []
    for entry in tree.get("nodes") or []:
        if _coerce_dict(entry).get("active"):
            node_uid = _legacy_node_uid(entry)
            if node_uid:
                active.append(node_uid)
    from_class = tree.get("fromClass")
    origin = {"kind": "class", "classId": int(from_class)} if from_class else {"kind": "character"}
    return {"treeUid": str(uid), "origin": origin, "activeNodeIds": sorted(set(active))}


def _migrate_legacy_actor(raw: Any) -> dict[str, Any]:
    actor = _coerce_dict(raw)
    trees = [tree for tree in (_migrate_legacy_tree(entry) for entry in actor.get("_techtrees") or []) if tree is not None]
    progress: dict[str, Any] = {
        "trees": trees,
        "classesInitialized": [int(class_id) for class_id in actor.get("_classInited") or []],
    }
    if actor.get("_oldClassId"):
        progress["previousClassId"] = int(actor["_oldClassId"])
    return progress


def _migrate_v0_to_v1(payload: dict[str, Any]) -> dict[str, Any]:
    raw_actors = payload.get("actors")
    if isinstance(raw_actors, list):
        # actor tables are 1-indexed with an empty slot 0
        pairs = [(index, entry) for index, entry in enumerate(raw_actors) if entry]
    else:
        pairs = list(_coerce_dict(raw_actors).items())
    actors: dict[str, Any] = {}
    for actor_id, entry in pairs:
        if "_techtrees" in _coerce_dict(entry):
            actors[str(actor_id)] = _migrate_legacy_actor(entry)
        else:
            actors[str(actor_id)] = entry
    # legacy saves stored a 32-bit string hash, which never matches a catalog hash
    return {"save_version": 1, "catalogHash": None, "actors": actors}


MIGRATION_STEPS: dict[int, Any] = {
    0: _migrate_v0_to_v1,
}


def migrate_save(payload: Any) -> dict[str, Any]:
    state = _coerce_dict(payload)

    version_raw = state.get("save_version")
    try:
        version = int(version_raw) if version_raw is not None else 0
    except (TypeError, ValueError):
        version = 0
    if version < 0:
        version = 0
    if version > SAVE_VERSION:
        version = SAVE_VERSION

    while version < SAVE_VERSION:
        step = MIGRATION_STEPS.get(version)
        if step is None:
            raise ValueError(f"No migration step defined from version {version}.")
        state = step(state)
        version = int(state.get("save_version", version + 1))
    state["save_version"] = SAVE_VERSION
    return state


def make_save_contents(catalog: NodeCatalog, actors: Iterable[Actor]) -> TechtreeSaveData:
    return TechtreeSaveData(
        catalog_hash=catalog.content_hash,
        actors={actor.actor_id: actor.progress.model_copy(deep=True) for actor in actors},
    )


def extract_save_contents(data: TechtreeSaveData, actors: Mapping[int, Actor], service: TechtreeService) -> bool:
    """Hand saved progress back to the host actors.

    Returns True when the save was made against the current catalog. On a
    mismatch every actor is resynced if ``update_trees_on_load`` is set.
    """
    for actor_id, progress in data.actors.items():
        actor = actors.get(actor_id)
        if actor is None:
            logger.warning("Save holds tree progress for unknown actor %s; skipped.", actor_id)
            continue
        actor.progress = progress.model_copy(deep=True)

    if data.catalog_hash == service.catalog.content_hash:
        logger.info("Saved trees and catalog trees are the same.")
        return True

    logger.warning(
        "Loading a save made with a different tree catalog (saved=%s, current=%s).",
        data.catalog_hash,
        service.catalog.content_hash,
    )
    if service.settings.update_trees_on_load:
        for actor in actors.values():
            service.resync_actor(actor)
    return False


def save_progress(data: TechtreeSaveData, save_path: Path | str) -> None:
    path = Path(save_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data.save_version = SAVE_VERSION
    path.write_text(json.dumps(data.model_dump(mode="json", by_alias=True), indent=2), encoding="utf-8")


def load_progress(save_path: Path | str) -> TechtreeSaveData:
    path = Path(save_path)
    if not path.exists():
        return TechtreeSaveData()
    payload = json.loads(path.read_text(encoding="utf-8"))
    data = TechtreeSaveData.model_validate(migrate_save(payload))
    data.save_version = SAVE_VERSION
    return data
