from __future__ import annotations

import logging
from pathlib import Path

from techtree.core.catalog import NodeCatalog, load_catalog
from techtree.core.hosts import ActorState, EventQueue, PartyState, SwitchBoard
from techtree.core.progression import TechtreeService
from techtree.core.settings import TechtreeSettings

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _two_node_service(party: PartyState) -> TechtreeService:
    catalog = NodeCatalog.from_payload(
        [
            {
                "uid": "T",
                "nodes": [
                    {"uid": "A", "depth": 1, "lane": 1, "neededParents": 0, "costs": {"gold": 50}},
                    {"uid": "B", "depth": 2, "lane": 1, "parents": ["A"], "neededParents": 1, "costs": {"gold": 30}},
                ],
            }
        ]
    )
    return TechtreeService(catalog, party, SwitchBoard(), EventQueue())


def _bundled_service(party: PartyState | None = None, **settings) -> tuple[TechtreeService, SwitchBoard, EventQueue]:
    switches = SwitchBoard()
    events = EventQueue()
    service = TechtreeService(
        load_catalog(CONTENT_DIR),
        party or PartyState(gold=1000, items={3: 1}, weapons={2: 1}),
        switches,
        events,
        settings=TechtreeSettings(**settings),
    )
    return service, switches, events


def _harold(level: int = 1) -> ActorState:
    return ActorState(actor_id=1, name="Harold", class_id=1, level=level, jp_by_class={1: 100})


def test_two_node_tree_unlock_and_refund_scenario() -> None:
    party = PartyState(gold=100)
    service = _two_node_service(party)
    actor = _harold()
    service.grant_tree(actor, "T")
    graph = service.graph_for(actor, "T")

    assert not graph.can_be_unlocked(actor, graph.node("B"))

    assert service.unlock_node(actor, "T", "A").ok
    assert party.gold == 50
    assert service.is_node_active(actor, "T", "A")
    assert graph.can_be_unlocked(actor, graph.node("B"))

    assert service.unlock_node(actor, "T", "B").ok
    assert party.gold == 20
    assert service.is_node_active(actor, "T", "B")

    assert service.reset_tree(actor, "T", refund=True) == 2
    assert party.gold == 100
    assert service.active_node_count(actor, "T") == 0


def test_unlock_refuses_when_short_and_deducts_nothing() -> None:
    party = PartyState(gold=49)
    service = _two_node_service(party)
    actor = _harold()
    service.grant_tree(actor, "T")

    result = service.unlock_node(actor, "T", "A")

    assert not result.ok
    assert result.reason == "Need 50 gold."
    assert party.gold == 49
    assert not service.is_node_active(actor, "T", "A")


def test_unlock_reports_blocking_reason() -> None:
    service, switches, _ = _bundled_service()
    actor = _harold(level=1)
    service.setup_actor(actor)

    assert service.can_unlock(actor, "HOLY", "HEAL2") == (False, "Needs 1 active parent(s).")
    assert service.can_unlock(actor, "HOLY", "SANCT") == (False, "Hidden.")
    switches.set_value(5, True)
    assert service.can_unlock(actor, "HOLY", "SANCT") == (False, "Needs level 5.")
    assert service.can_unlock(actor, "ARCANE", "SPARK")[0] is False
    assert service.can_unlock(actor, "HOLY", "NOPE") == (False, "Tree 'HOLY' has no node 'NOPE'.")


def test_display_only_blocks_every_unlock() -> None:
    service, _, _ = _bundled_service(display_only=True)
    actor = _harold()
    service.setup_actor(actor)

    assert service.unlock_node(actor, "HOLY", "HEAL1").reason == "Display only."


def test_unlock_applies_effects_and_resolves_animation() -> None:
    party = PartyState(gold=1000, items={3: 1}, weapons={2: 1})
    service, switches, events = _bundled_service(party)
    actor = _harold(level=5)
    service.setup_actor(actor)

    slash = service.unlock_node(actor, "BLADE", "SLASH")
    assert slash.ok and slash.animation_id == 20
    assert [line.label() for line in slash.paid] == ["30 gold"]

    heal = service.unlock_node(actor, "HOLY", "HEAL1")
    assert heal.animation_id == 15
    assert service.unlock_node(actor, "HOLY", "HEAL2").ok
    assert service.unlock_node(actor, "HOLY", "BLESS").ok
    assert switches.value(5) is True
    assert party.items[3] == 0

    sanct = service.unlock_node(actor, "HOLY", "SANCT")
    assert sanct.ok and sanct.animation_id == 42
    assert events.reserved == [4]
    assert {10, 11, 12, 13, 20}.issubset(actor.skills)
    assert actor.param_bonus(0) == 20
    assert party.gold == 1000 - 30 - 50 - 80 - 150
    assert actor.jp(1) == 100 - 20 - 40


def test_activate_command_skips_costs_and_is_idempotent() -> None:
    party = PartyState(gold=0)
    service, _, _ = _bundled_service(party)
    actor = _harold()
    service.setup_actor(actor)

    assert service.activate_node(actor, "HOLY", "HEAL1")
    assert not service.activate_node(actor, "HOLY", "HEAL1")
    assert party.gold == 0
    assert actor.param_bonus(0) == 20

    assert service.deactivate_node(actor, "HOLY", "HEAL1")
    assert not service.deactivate_node(actor, "HOLY", "HEAL1")
    assert actor.param_bonus(0) == 0
    assert 10 not in actor.skills


def test_unknown_tree_or_node_is_a_logged_no_op(caplog) -> None:
    service, _, _ = _bundled_service()
    actor = _harold()
    service.setup_actor(actor)
    before = actor.model_dump()

    with caplog.at_level(logging.WARNING, logger="techtree"):
        assert not service.activate_node(actor, "ARCANE", "SPARK")
        assert not service.activate_node(actor, "HOLY", "GHOST")
        assert not service.deactivate_node(actor, "NOWHERE", "X")
        assert service.reset_tree(actor, "NOWHERE", refund=True) == 0

    assert actor.model_dump() == before
    assert "Harold has no tree 'ARCANE'" in caplog.text
    assert "Tree 'HOLY' has no node 'GHOST'" in caplog.text
    assert "Resetting tree 'NOWHERE' has failed" in caplog.text


def test_queries_sum_active_costs() -> None:
    service, _, _ = _bundled_service()
    actor = _harold(level=5)
    service.setup_actor(actor)
    for node_uid in ("HEAL1", "HEAL2", "BLESS"):
        assert service.unlock_node(actor, "HOLY", node_uid).ok

    assert service.active_node_count(actor, "HOLY") == 3
    assert service.cost_sum(actor, "HOLY", "gold") == 130
    assert service.cost_sum(actor, "HOLY", "jp") == 20
    assert service.cost_sum(actor, "HOLY", "item", 3) == 1
    assert service.cost_sum(actor, "HOLY", "item", 4) == 0
    assert service.cost_sum(actor, "MISSING", "gold") == 0
    assert not service.is_node_active(actor, "HOLY", "SANCT")
    assert not service.is_node_active(actor, "MISSING", "SANCT")


def test_grant_tree_reuses_existing_character_instance() -> None:
    service, _, _ = _bundled_service()
    actor = _harold()
    service.setup_actor(actor)

    existing = actor.progress.find("BLADE")
    assert service.grant_tree(actor, "BLADE") is existing
    arcane = service.grant_tree(actor, "ARCANE")
    assert arcane is not None and arcane.origin_class_id is None
    assert service.grant_tree(actor, "NOWHERE") is None
    assert [instance.tree_uid for instance in actor.progress.trees] == ["BLADE", "HOLY", "ARCANE"]


def test_reset_all_refunds_points_to_each_origin_class() -> None:
    service, _, _ = _bundled_service()
    actor = _harold(level=5)
    service.setup_actor(actor)
    assert service.unlock_node(actor, "HOLY", "HEAL1").ok
    assert service.unlock_node(actor, "HOLY", "HEAL2").ok
    assert service.unlock_node(actor, "BLADE", "SLASH").ok
    gold_after_unlocks = service.party.gold

    service.change_class(actor, 2)
    assert service.reset_all_trees(actor, refund=True) == 3

    assert actor.jp(1) == 100
    assert actor.jp(2) == 0
    assert service.party.gold == gold_after_unlocks + 50 + 80 + 30
    assert all(not instance.active_node_ids for instance in actor.progress.trees)


def test_reset_without_refund_keeps_balances() -> None:
    service, _, _ = _bundled_service()
    actor = _harold()
    service.setup_actor(actor)
    assert service.unlock_node(actor, "BLADE", "SLASH").ok
    gold = service.party.gold

    assert service.reset_tree(actor, "BLADE", refund=False) == 1
    assert service.party.gold == gold
    assert 20 not in actor.skills
