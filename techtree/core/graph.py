from __future__ import annotations

import logging

from .catalog import NodeCatalog
from .hosts import Actor, SwitchStore
from .models import CharacterOwned, ClassOwned, NodeDefinition, NodeState, TreeDefinition, TreeInstance

logger = logging.getLogger(__name__)


def instantiate_tree(catalog: NodeCatalog, actor: Actor, tree_uid: str, class_id: int | None = None) -> TreeInstance | None:
    """Append a fresh instance of ``tree_uid`` to the actor's progress."""
    if catalog.find_tree(tree_uid) is None:
        logger.warning("%s references tree '%s', which is not in the catalog.", actor.name, tree_uid)
        return None
    origin = CharacterOwned() if class_id is None else ClassOwned(class_id=class_id)
    instance = TreeInstance(tree_uid=tree_uid, origin=origin)
    actor.progress.trees.append(instance)
    return instance


class UnlockGraph:
    """Activation overlay of one actor's copy of a tree.

    Deactivating a node never cascades to its children: a child stays active
    even when the parents that unlocked it are switched off.
    """

    def __init__(
        self,
        catalog: NodeCatalog,
        tree: TreeDefinition,
        instance: TreeInstance,
        switches: SwitchStore,
        *,
        active_always_visible: bool = False,
    ) -> None:
        self.catalog = catalog
        self.tree = tree
        self.instance = instance
        self.switches = switches
        self.active_always_visible = active_always_visible

    def node(self, node_uid: str) -> NodeDefinition | None:
        return self.catalog.find_node(self.tree, node_uid)

    def is_active(self, node: NodeDefinition) -> bool:
        return self.instance.is_active(node.uid)

    def active_parent_count(self, node: NodeDefinition) -> int:
        count = 0
        for parent_uid in node.parent_ids:
            parent = self.catalog.find_node(self.tree, parent_uid)
            if parent is not None and self.is_active(parent):
                count += 1
        return count

    def is_unlockable(self, node: NodeDefinition) -> bool:
        return self.active_parent_count(node) >= node.needed_parents

    def is_visible(self, node: NodeDefinition) -> bool:
        if self.active_always_visible and self.is_active(node):
            return True
        return all(self.switches.value(switch_id) for switch_id in node.visibility.required_switch_ids)

    def can_be_unlocked(self, actor: Actor, node: NodeDefinition, *, display_only: bool = False) -> bool:
        if self.is_active(node):
            return False
        if not self.is_visible(node):
            return False
        if display_only:
            return False
        if node.level_requirement is not None and actor.level < node.level_requirement:
            return False
        return self.is_unlockable(node)

    def node_state(self, node: NodeDefinition) -> NodeState:
        if self.is_active(node):
            return "active"
        if not self.is_visible(node):
            return "hidden"
        return "unlockable" if self.is_unlockable(node) else "inactive"

    def activate(self, node: NodeDefinition) -> None:
        self.instance.active_node_ids.add(node.uid)

    def deactivate(self, node: NodeDefinition) -> None:
        self.instance.active_node_ids.discard(node.uid)

    def active_node_ids(self) -> frozenset[str]:
        return frozenset(self.instance.active_node_ids)

    def active_nodes(self) -> list[NodeDefinition]:
        return [node for node in self.tree.nodes if self.is_active(node)]

    def active_count(self) -> int:
        return len(self.active_nodes())
