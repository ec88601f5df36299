from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .catalog import NodeCatalog
from .costs import CostLedger
from .effects import EffectApplier
from .graph import instantiate_tree
from .hosts import Actor
from .models import NodeDefinition, TreeInstance
from .settings import ClassChangePolicy

logger = logging.getLogger(__name__)
audit = logging.getLogger("techtree.audit")


@dataclass(slots=True)
class ClassChangeReport:
    actor_id: int
    old_class_id: int
    new_class_id: int
    revoked_skills: list[int] = field(default_factory=list)
    granted_skills: list[int] = field(default_factory=list)
    added_trees: list[str] = field(default_factory=list)
    reset_trees: list[str] = field(default_factory=list)
    failed_scripts: int = 0
    before: dict[str, list[str]] = field(default_factory=dict)
    after: dict[str, list[str]] = field(default_factory=dict)

    @property
    def class_changed(self) -> bool:
        return self.old_class_id != self.new_class_id


def reset_instance(
    catalog: NodeCatalog,
    effects: EffectApplier,
    ledger: CostLedger,
    actor: Actor,
    instance: TreeInstance,
    *,
    refund: bool,
) -> int:
    """Deactivate every active node of one instance. Returns how many were reset."""
    tree = catalog.find_tree(instance.tree_uid)
    if tree is None:
        logger.warning("Resetting tree '%s' for %s: tree is not in the catalog.", instance.tree_uid, actor.name)
        instance.active_node_ids.clear()
        return 0
    count = 0
    for node in tree.nodes:
        if not instance.is_active(node.uid):
            continue
        instance.active_node_ids.discard(node.uid)
        effects.apply_on_deactivate(actor, node)
        if refund:
            ledger.refund(actor, node, instance.origin_class_id)
        count += 1
    instance.active_node_ids.clear()
    return count


class ClassBindingManager:
    """Keeps class-bound trees in step with an actor's class.

    Every bulk pass walks a snapshot of the instance list, so effect handlers
    that grant or drop trees do not disturb the pass in progress.
    """

    def __init__(
        self,
        catalog: NodeCatalog,
        effects: EffectApplier,
        ledger: CostLedger,
        policy: ClassChangePolicy | None = None,
    ) -> None:
        self.catalog = catalog
        self.effects = effects
        self.ledger = ledger
        self.policy = policy or ClassChangePolicy()

    def _active_nodes(self, instance: TreeInstance) -> list[NodeDefinition]:
        tree = self.catalog.find_tree(instance.tree_uid)
        if tree is None:
            return []
        return [node for node in tree.nodes if instance.is_active(node.uid)]

    def _each_active(
        self,
        actor: Actor,
        predicate: Callable[[TreeInstance], bool],
    ) -> Iterable[tuple[TreeInstance, NodeDefinition]]:
        snapshot = tuple(actor.progress.trees)
        for instance in snapshot:
            if not predicate(instance):
                continue
            for node in self._active_nodes(instance):
                yield instance, node

    def add_class_trees_if_needed(self, actor: Actor, class_id: int) -> list[str]:
        if class_id in actor.progress.classes_initialized:
            return []
        actor.progress.classes_initialized.add(class_id)
        added: list[str] = []
        for tree_uid in self.catalog.class_tree_uids(class_id):
            if instantiate_tree(self.catalog, actor, tree_uid, class_id) is not None:
                added.append(tree_uid)
        return added

    def change_class(self, actor: Actor, new_class_id: int) -> ClassChangeReport:
        policy = self.policy
        old_class_id = actor.class_id
        actor.progress.previous_class_id = old_class_id
        report = ClassChangeReport(actor.actor_id, old_class_id, new_class_id, before=actor.progress.snapshot_active())
        actor.progress.last_active_snapshot = dict(report.before)

        actor.change_class(new_class_id)
        changed = report.class_changed

        def from_old(instance: TreeInstance) -> bool:
            return instance.origin_class_id is not None and instance.origin_class_id == old_class_id

        def from_new(instance: TreeInstance) -> bool:
            return instance.origin_class_id is not None and instance.origin_class_id == new_class_id

        def from_other(instance: TreeInstance) -> bool:
            return instance.origin_class_id is not None and instance.origin_class_id != new_class_id

        if policy.reset_on_class_change and changed:
            for instance in tuple(actor.progress.trees):
                if from_old(instance) and instance.active_node_ids:
                    reset_instance(self.catalog, self.effects, self.ledger, actor, instance, refund=True)
                    report.reset_trees.append(instance.tree_uid)

        if policy.unlearn:
            for _, node in self._each_active(actor, from_other):
                report.revoked_skills.extend(self.effects.forget_skills(actor, node))

        if policy.remove_stats and changed:
            for _, node in self._each_active(actor, from_old):
                self.effects.add_stats(actor, node, sign=-1)

        if policy.run_deactivate_eval and changed:
            for _, node in self._each_active(actor, from_old):
                if not self.effects.run_deactivate_script(actor, node):
                    report.failed_scripts += 1

        report.added_trees = self.add_class_trees_if_needed(actor, new_class_id)

        for instance, node in self._each_active(actor, lambda _: True):
            self.effects.set_switches(node, inverse=from_other(instance))

        if policy.relearn:
            for _, node in self._each_active(actor, from_new):
                report.granted_skills.extend(self.effects.learn_skills(actor, node))

        if policy.readd_stats and changed:
            for _, node in self._each_active(actor, from_new):
                self.effects.add_stats(actor, node)

        if policy.run_activate_eval and changed:
            for _, node in self._each_active(actor, from_new):
                if not self.effects.run_activate_script(actor, node):
                    report.failed_scripts += 1

        report.after = actor.progress.snapshot_active()
        audit.info(
            "class change actor=%s %s->%s revoked=%s granted=%s added=%s reset=%s",
            actor.actor_id,
            old_class_id,
            new_class_id,
            report.revoked_skills,
            report.granted_skills,
            report.added_trees,
            report.reset_trees,
        )
        return report
