from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from techtree.core.catalog import NodeCatalog, catalog_hash, load_catalog
from techtree.core.errors import TechtreeValidationError

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _node(uid: str, depth: int, lane: int, parents: tuple[str, ...] = (), needed: int = 0, **extra) -> dict:
    payload = {
        "uid": uid,
        "depth": depth,
        "lane": lane,
        "parents": [{"parent": parent} for parent in parents],
        "neededParents": needed,
    }
    payload.update(extra)
    return payload


def test_bundled_catalog_loads_without_issues() -> None:
    catalog = load_catalog(CONTENT_DIR)

    assert [tree.uid for tree in catalog.trees] == ["HOLY", "BLADE", "ARCANE"]
    assert catalog.issues == []
    holy = catalog.find_tree("HOLY")
    assert holy is not None
    assert catalog.find_node_at(holy, 2, 2).uid == "BLESS"
    assert catalog.find_node(holy, "SANCT").parent_ids == ("HEAL2", "BLESS")
    assert catalog.children_of(holy, "HEAL1") == ("HEAL2", "BLESS")
    assert catalog.grid_bounds(holy) == (3, 2)
    assert catalog.actor_tree_uids(1) == ("BLADE",)
    assert catalog.class_tree_uids(2) == ("ARCANE",)


def test_technode_wrapper_and_blank_scripts_are_normalized() -> None:
    catalog = NodeCatalog.from_payload(
        [
            {
                "uid": "T",
                "nodes": [
                    {"technode": _node("A", 1, 1, onActivate={"eval": {"onActivate": "", "onDeactivate": "  "}})},
                    {"technode": _node("B", 2, 1, parents=("A",), needed=1)},
                ],
            }
        ]
    )
    tree = catalog.find_tree("T")
    first = catalog.find_node(tree, "A")

    assert first.on_activate.scripts.on_activate is None
    assert first.on_activate.scripts.on_deactivate is None
    assert catalog.find_node(tree, "B").parent_ids == ("A",)


def test_duplicate_node_uid_is_fatal() -> None:
    with pytest.raises(TechtreeValidationError, match="Duplicate node uid 'A'"):
        NodeCatalog.from_payload([{"uid": "T", "nodes": [_node("A", 1, 1), _node("A", 2, 1)]}])


def test_duplicate_tree_uid_is_fatal() -> None:
    with pytest.raises(TechtreeValidationError, match="Duplicate tree uid 'T'"):
        NodeCatalog.from_payload([{"uid": "T"}, {"uid": "T"}])


def test_stat_slot_outside_range_is_a_schema_error() -> None:
    with pytest.raises(TechtreeValidationError, match="Schema validation failed") as excinfo:
        NodeCatalog.from_payload([{"uid": "T", "nodes": [_node("A", 1, 1, onActivate={"stats": {"8": 3}})]}])

    assert any("stats" in detail for detail in excinfo.value.details)


def test_reference_problems_are_reported_not_raised() -> None:
    catalog = NodeCatalog.from_payload(
        [
            {
                "uid": "T",
                "nodes": [
                    _node("A", 1, 1, onActivate={"skills": [5, 250]}),
                    _node("B", 1, 1),
                    _node("C", 2, 1, parents=("A", "GHOST"), needed=3),
                ],
            }
        ],
        {"classes": {"4": ["MISSING"]}},
        max_skill_id=200,
    )
    tree = catalog.find_tree("T")
    kinds = sorted(issue.kind for issue in catalog.issues)

    assert kinds == ["binding", "needed_parents", "parent", "position", "skill"]
    assert catalog.find_node_at(tree, 1, 1).uid == "A"
    assert catalog.invalid_skill_ids == frozenset({250})
    assert catalog.is_grantable_skill(5)
    assert not catalog.is_grantable_skill(250)


def test_catalog_hash_tracks_content_changes() -> None:
    payload = [{"uid": "T", "nodes": [_node("A", 1, 1, costs={"gold": 10})]}]
    first = NodeCatalog.from_payload(payload)
    same = NodeCatalog.from_payload(json.loads(json.dumps(payload)))
    payload[0]["nodes"][0]["costs"]["gold"] = 11
    changed = NodeCatalog.from_payload(payload)

    assert first.content_hash == same.content_hash == catalog_hash(first.trees)
    assert len(first.content_hash) == 16
    assert first.content_hash != changed.content_hash


def test_animation_falls_back_from_node_to_tree_to_default() -> None:
    catalog = load_catalog(CONTENT_DIR)
    holy = catalog.find_tree("HOLY")
    blade = catalog.find_tree("BLADE")

    assert catalog.resolve_animation_id(holy, catalog.find_node(holy, "SANCT"), 15) == 42
    assert catalog.resolve_animation_id(blade, catalog.find_node(blade, "SLASH"), 15) == 20
    assert catalog.resolve_animation_id(holy, catalog.find_node(holy, "HEAL1"), 15) == 15
    assert catalog.resolve_animation_id(holy, catalog.find_node(holy, "HEAL1"), None) is None


def test_invalid_json_in_catalog_file_raises_clear_error(tmp_path: Path) -> None:
    content = tmp_path / "content"
    shutil.copytree(CONTENT_DIR, content)
    (content / "techtrees.json").write_text("[{", encoding="utf-8")

    with pytest.raises(TechtreeValidationError, match="Invalid JSON in techtrees.json"):
        load_catalog(content)


def test_bindings_file_is_optional(tmp_path: Path) -> None:
    content = tmp_path / "content"
    content.mkdir()
    shutil.copy(CONTENT_DIR / "techtrees.json", content / "techtrees.json")

    catalog = load_catalog(content)

    assert catalog.actor_tree_uids(1) == ()
    assert catalog.class_tree_uids(1) == ()
