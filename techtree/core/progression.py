from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .catalog import NodeCatalog
from .class_binding import ClassBindingManager, ClassChangeReport, reset_instance
from .costs import CostLedger, CostLine
from .effects import EffectApplier, ScriptRegistry
from .errors import LookupFailure
from .graph import UnlockGraph, instantiate_tree
from .hosts import Actor, EventDispatcher, Party, SwitchStore
from .models import CostKind, NodeDefinition, TreeDefinition, TreeInstance
from .settings import TechtreeSettings

logger = logging.getLogger(__name__)
audit = logging.getLogger("techtree.audit")


@dataclass(slots=True)
class UnlockResult:
    ok: bool
    reason: str
    tree_uid: str
    node_uid: str
    paid: list[CostLine] = field(default_factory=list)
    animation_id: int | None = None


class TechtreeService:
    """Command surface over one catalog and the host stores.

    Commands never raise for unknown tree or node uids. They log a warning and
    leave the actor untouched.
    """

    def __init__(
        self,
        catalog: NodeCatalog,
        party: Party,
        switches: SwitchStore,
        events: EventDispatcher,
        scripts: ScriptRegistry | None = None,
        settings: TechtreeSettings | None = None,
    ) -> None:
        self.catalog = catalog
        self.party = party
        self.switches = switches
        self.settings = settings or TechtreeSettings()
        self.ledger = CostLedger(party)
        self.effects = EffectApplier(catalog, switches, events, scripts)
        self.binding = ClassBindingManager(catalog, self.effects, self.ledger, self.settings.class_change)

    def _instances(self, actor: Actor, tree_uid: str) -> list[TreeInstance]:
        return [instance for instance in actor.progress.trees if instance.tree_uid == tree_uid]

    def _resolve_tree(self, actor: Actor, tree_uid: str) -> tuple[TreeDefinition, TreeInstance]:
        instance = actor.progress.find(tree_uid, actor.class_id)
        if instance is None:
            raise LookupFailure(f"{actor.name} has no tree '{tree_uid}'.")
        tree = self.catalog.find_tree(tree_uid)
        if tree is None:
            raise LookupFailure(f"Tree '{tree_uid}' is not in the catalog.")
        return tree, instance

    def _resolve_node(self, actor: Actor, tree_uid: str, node_uid: str) -> tuple[TreeInstance, NodeDefinition]:
        tree, instance = self._resolve_tree(actor, tree_uid)
        node = self.catalog.find_node(tree, node_uid)
        if node is None:
            raise LookupFailure(f"Tree '{tree_uid}' has no node '{node_uid}'.")
        return instance, node

    def setup_actor(self, actor: Actor) -> list[str]:
        if actor.progress.classes_initialized:
            logger.debug("%s already has tree progress; setup skipped.", actor.name)
            return []
        created: list[str] = []
        for tree_uid in self.catalog.actor_tree_uids(actor.actor_id):
            if instantiate_tree(self.catalog, actor, tree_uid) is not None:
                created.append(tree_uid)
        created.extend(self.binding.add_class_trees_if_needed(actor, actor.class_id))
        return created

    def owned_trees(self, actor: Actor) -> list[TreeInstance]:
        """Instances the actor can browse and unlock in: character trees and trees of the current class."""
        return actor.progress.owned(actor.class_id)

    def grant_tree(self, actor: Actor, tree_uid: str) -> TreeInstance | None:
        for instance in self._instances(actor, tree_uid):
            if instance.belongs_to(actor.class_id):
                logger.info("%s already owns tree '%s'.", actor.name, tree_uid)
                return instance
        instance = instantiate_tree(self.catalog, actor, tree_uid)
        if instance is not None:
            audit.info("grant actor=%s tree=%s", actor.actor_id, tree_uid)
        return instance

    def graph_for(self, actor: Actor, tree_uid: str) -> UnlockGraph:
        """Unlock view of the actor's first instance of ``tree_uid``.

        Raises ``LookupFailure`` when the actor or the catalog lacks the tree.
        """
        tree, instance = self._resolve_tree(actor, tree_uid)
        return UnlockGraph(
            self.catalog,
            tree,
            instance,
            self.switches,
            active_always_visible=self.settings.active_nodes_always_visible,
        )

    def activate_node(self, actor: Actor, tree_uid: str, node_uid: str, *, replay: bool = False) -> bool:
        try:
            instance, node = self._resolve_node(actor, tree_uid, node_uid)
        except LookupFailure as exc:
            logger.warning("Activating node '%s' for %s in tree '%s' failed: %s", node_uid, actor.name, tree_uid, exc)
            return False
        if instance.is_active(node.uid):
            logger.info("Node '%s' of tree '%s' is already active for %s.", node_uid, tree_uid, actor.name)
            return False
        instance.active_node_ids.add(node.uid)
        self.effects.apply_on_activate(actor, node, replay=replay)
        audit.info("activate actor=%s tree=%s node=%s replay=%s", actor.actor_id, tree_uid, node_uid, replay)
        return True

    def deactivate_node(self, actor: Actor, tree_uid: str, node_uid: str) -> bool:
        try:
            instance, node = self._resolve_node(actor, tree_uid, node_uid)
        except LookupFailure as exc:
            logger.warning("Deactivating node '%s' for %s in tree '%s' failed: %s", node_uid, actor.name, tree_uid, exc)
            return False
        if not instance.is_active(node.uid):
            logger.info("Node '%s' of tree '%s' is not active for %s.", node_uid, tree_uid, actor.name)
            return False
        instance.active_node_ids.discard(node.uid)
        self.effects.apply_on_deactivate(actor, node)
        audit.info("deactivate actor=%s tree=%s node=%s", actor.actor_id, tree_uid, node_uid)
        return True

    def can_unlock(self, actor: Actor, tree_uid: str, node_uid: str) -> tuple[bool, str]:
        try:
            graph = self.graph_for(actor, tree_uid)
        except LookupFailure as exc:
            return False, str(exc)
        if not graph.instance.belongs_to(actor.class_id):
            return False, "Tree belongs to another class."
        node = graph.node(node_uid)
        if node is None:
            return False, f"Tree '{tree_uid}' has no node '{node_uid}'."
        if graph.is_active(node):
            return False, "Already unlocked."
        if not graph.is_visible(node):
            return False, "Hidden."
        if self.settings.display_only:
            return False, "Display only."
        if node.level_requirement is not None and actor.level < node.level_requirement:
            return False, f"Needs level {node.level_requirement}."
        if not graph.can_be_unlocked(actor, node):
            return False, f"Needs {node.needed_parents} active parent(s)."
        if not self.ledger.can_pay(actor, node):
            short = [line.label() for line in self.ledger.build_cost_breakdown(node, actor) if not line.affordable]
            return False, f"Need {', '.join(short)}."
        return True, "Ready."

    def unlock_node(self, actor: Actor, tree_uid: str, node_uid: str) -> UnlockResult:
        """Player flow: check eligibility and cost, pay, apply effects, mark active."""
        ok, reason = self.can_unlock(actor, tree_uid, node_uid)
        if not ok:
            logger.debug("Unlock of '%s/%s' refused for %s: %s", tree_uid, node_uid, actor.name, reason)
            return UnlockResult(False, reason, tree_uid, node_uid)
        graph = self.graph_for(actor, tree_uid)
        _, node = self._resolve_node(actor, tree_uid, node_uid)
        paid = self.ledger.build_cost_breakdown(node, actor)
        if not self.ledger.pay(actor, node):
            return UnlockResult(False, "Cannot afford.", tree_uid, node_uid)
        self.effects.apply_on_activate(actor, node)
        graph.activate(node)
        animation_id = self.catalog.resolve_animation_id(graph.tree, node, self.settings.default_animation_id)
        audit.info(
            "unlock actor=%s tree=%s node=%s paid=%s",
            actor.actor_id,
            tree_uid,
            node_uid,
            [line.label() for line in paid],
        )
        return UnlockResult(True, "Unlocked.", tree_uid, node_uid, paid=paid, animation_id=animation_id)

    def reset_tree(self, actor: Actor, tree_uid: str, *, refund: bool) -> int:
        instances = self._instances(actor, tree_uid)
        if not instances:
            logger.warning("Resetting tree '%s' has failed for %s: no such tree.", tree_uid, actor.name)
            return 0
        count = 0
        for instance in instances:
            count += reset_instance(self.catalog, self.effects, self.ledger, actor, instance, refund=refund)
        audit.info("reset actor=%s tree=%s nodes=%s refund=%s", actor.actor_id, tree_uid, count, refund)
        return count

    def reset_all_trees(self, actor: Actor, *, refund: bool) -> int:
        count = 0
        for instance in tuple(actor.progress.trees):
            count += reset_instance(self.catalog, self.effects, self.ledger, actor, instance, refund=refund)
        audit.info("reset-all actor=%s nodes=%s refund=%s", actor.actor_id, count, refund)
        return count

    def active_node_count(self, actor: Actor, tree_uid: str) -> int:
        total = 0
        for instance in self._instances(actor, tree_uid):
            tree = self.catalog.find_tree(tree_uid)
            if tree is not None:
                total += sum(1 for node in tree.nodes if instance.is_active(node.uid))
        return total

    def cost_sum(self, actor: Actor, tree_uid: str, kind: CostKind, item_id: int | None = None) -> int:
        tree = self.catalog.find_tree(tree_uid)
        if tree is None:
            logger.warning("Cost sum for tree '%s' requested, but it is not in the catalog.", tree_uid)
            return 0
        return sum(CostLedger.sum_active_costs(tree, instance, kind, item_id) for instance in self._instances(actor, tree_uid))

    def is_node_active(self, actor: Actor, tree_uid: str, node_uid: str) -> bool:
        instance = actor.progress.find(tree_uid, actor.class_id)
        return instance is not None and instance.is_active(node_uid)

    def cost_breakdown(self, actor: Actor, tree_uid: str, node_uid: str) -> list[CostLine]:
        try:
            _, node = self._resolve_node(actor, tree_uid, node_uid)
        except LookupFailure as exc:
            logger.warning("No cost breakdown for '%s/%s': %s", tree_uid, node_uid, exc)
            return []
        return self.ledger.build_cost_breakdown(node, actor)

    def change_class(self, actor: Actor, new_class_id: int) -> ClassChangeReport:
        return self.binding.change_class(actor, new_class_id)

    def resync_actor(self, actor: Actor) -> dict[str, list[str]]:
        """Rebuild every instance against the current catalog.

        Effects are reverted without refund, then the node uids that were active
        and still exist are replayed. Triggered events do not fire.
        """
        replayed: dict[str, list[str]] = {}
        for instance in tuple(actor.progress.trees):
            tree = self.catalog.find_tree(instance.tree_uid)
            if tree is None:
                logger.warning("%s loads tree '%s', which is not in the catalog.", actor.name, instance.tree_uid)
                continue
            previous = set(instance.active_node_ids)
            reset_instance(self.catalog, self.effects, self.ledger, actor, instance, refund=False)
            restored: list[str] = []
            for node in tree.nodes:
                if node.uid in previous:
                    instance.active_node_ids.add(node.uid)
                    self.effects.apply_on_activate(actor, node, replay=True)
                    restored.append(node.uid)
            dropped = previous.difference(restored)
            if dropped:
                logger.info("Tree '%s' no longer has nodes %s; %s loses them.", tree.uid, sorted(dropped), actor.name)
            replayed.setdefault(tree.uid, []).extend(restored)
        audit.info("resync actor=%s trees=%s", actor.actor_id, sorted(replayed))
        return replayed
