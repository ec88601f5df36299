from __future__ import annotations

from techtree.core.catalog import NodeCatalog
from techtree.core.graph import UnlockGraph
from techtree.core.hosts import ActorState, SwitchBoard
from techtree.core.models import TreeInstance


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


def _graph(switches: SwitchBoard | None = None, *, active_always_visible: bool = False) -> UnlockGraph:
    catalog = NodeCatalog.from_payload(
        [
            {
                "uid": "T",
                "nodes": [
                    _node("A", 1, 1),
                    _node("B", 1, 2),
                    _node("ANY", 2, 1, parents=("A", "B"), needed=1),
                    _node("BOTH", 2, 2, parents=("A", "B"), needed=2),
                    _node("FREE", 2, 3, parents=("A", "B"), needed=0),
                    _node("SECRET", 3, 1, visibility={"switches": [{"id": 5}]}),
                    _node("VETERAN", 3, 2, levelRequirement=10),
                ],
            }
        ]
    )
    tree = catalog.find_tree("T")
    return UnlockGraph(
        catalog,
        tree,
        TreeInstance(tree_uid="T"),
        switches or SwitchBoard(),
        active_always_visible=active_always_visible,
    )


def _actor(level: int = 1) -> ActorState:
    return ActorState(actor_id=1, name="Harold", class_id=1, level=level)


def test_unlockable_follows_active_parent_count() -> None:
    graph = _graph()
    any_parent = graph.node("ANY")
    both_parents = graph.node("BOTH")

    assert not graph.is_unlockable(any_parent)
    assert not graph.is_unlockable(both_parents)

    graph.activate(graph.node("A"))
    assert graph.active_parent_count(both_parents) == 1
    assert graph.is_unlockable(any_parent)
    assert not graph.is_unlockable(both_parents)

    graph.activate(graph.node("B"))
    assert graph.is_unlockable(any_parent)
    assert graph.is_unlockable(both_parents)


def test_zero_needed_parents_is_unlockable_with_parents_listed() -> None:
    graph = _graph()
    free = graph.node("FREE")

    assert graph.active_parent_count(free) == 0
    assert graph.is_unlockable(free)
    assert graph.can_be_unlocked(_actor(), free)


def test_visibility_requires_every_listed_switch() -> None:
    switches = SwitchBoard()
    graph = _graph(switches)
    secret = graph.node("SECRET")

    assert not graph.is_visible(secret)
    assert graph.node_state(secret) == "hidden"
    assert not graph.can_be_unlocked(_actor(), secret)

    switches.set_value(5, True)
    assert graph.is_visible(secret)
    assert graph.node_state(secret) == "unlockable"


def test_active_nodes_can_stay_visible_when_switch_turns_off() -> None:
    switches = SwitchBoard(values={5: True})
    graph = _graph(switches, active_always_visible=True)
    secret = graph.node("SECRET")
    graph.activate(secret)
    switches.set_value(5, False)

    assert graph.is_visible(secret)
    assert graph.node_state(secret) == "active"

    strict = _graph(switches)
    assert not strict.is_visible(strict.node("SECRET"))


def test_level_requirement_and_display_only_block_unlocking() -> None:
    graph = _graph()
    veteran = graph.node("VETERAN")
    root = graph.node("A")

    assert not graph.can_be_unlocked(_actor(level=9), veteran)
    assert graph.can_be_unlocked(_actor(level=10), veteran)
    assert not graph.can_be_unlocked(_actor(level=10), root, display_only=True)


def test_active_node_cannot_be_unlocked_again() -> None:
    graph = _graph()
    root = graph.node("A")
    graph.activate(root)

    assert not graph.can_be_unlocked(_actor(), root)
    assert graph.node_state(root) == "active"


def test_deactivating_parent_leaves_children_active() -> None:
    graph = _graph()
    graph.activate(graph.node("A"))
    graph.activate(graph.node("ANY"))
    graph.deactivate(graph.node("A"))

    assert graph.active_node_ids() == frozenset({"ANY"})
    assert [node.uid for node in graph.active_nodes()] == ["ANY"]
    assert graph.active_count() == 1
    assert graph.node_state(graph.node("BOTH")) == "inactive"
