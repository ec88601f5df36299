from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import AffordabilityViolation
from .hosts import Actor, Party
from .models import CostKind, InventoryKind, NodeDefinition, TreeDefinition, TreeInstance

logger = logging.getLogger(__name__)

INVENTORY_KINDS: tuple[InventoryKind, ...] = ("item", "weapon", "armor")


@dataclass(frozen=True, slots=True)
class CostLine:
    kind: CostKind
    amount: int
    ref_id: int | None = None
    affordable: bool | None = None

    def label(self) -> str:
        if self.ref_id is None:
            return f"{self.amount} {self.kind}"
        return f"{self.amount}x {self.kind} #{self.ref_id}"


class CostLedger:
    def __init__(self, party: Party) -> None:
        self.party = party

    def _balance(self, actor: Actor, line: CostLine) -> int:
        if line.kind == "gold":
            return int(self.party.gold)
        if line.kind == "jp":
            return int(actor.jp())
        return self.party.num_items(line.kind, int(line.ref_id or 0))

    def build_cost_breakdown(self, node: NodeDefinition, actor: Actor | None = None) -> list[CostLine]:
        costs = node.costs
        lines: list[CostLine] = []
        if costs.gold > 0:
            lines.append(CostLine("gold", costs.gold))
        if costs.jp > 0:
            lines.append(CostLine("jp", costs.jp))
        for kind in INVENTORY_KINDS:
            for entry in costs.entries(kind):
                lines.append(CostLine(kind, entry.amount, entry.id))
        if actor is None:
            return lines
        # repeated entries for one item draw on the same balance
        demand: dict[tuple[str, int | None], int] = {}
        for line in lines:
            demand[(line.kind, line.ref_id)] = demand.get((line.kind, line.ref_id), 0) + line.amount
        return [
            CostLine(line.kind, line.amount, line.ref_id, self._balance(actor, line) >= demand[(line.kind, line.ref_id)])
            for line in lines
        ]

    def can_pay(self, actor: Actor, node: NodeDefinition) -> bool:
        return all(line.affordable for line in self.build_cost_breakdown(node, actor))

    def pay(self, actor: Actor, node: NodeDefinition, *, strict: bool = False) -> bool:
        breakdown = self.build_cost_breakdown(node, actor)
        short = [line.label() for line in breakdown if not line.affordable]
        if short:
            message = f"{actor.name} cannot pay for node '{node.uid}': short on {', '.join(short)}"
            if strict:
                raise AffordabilityViolation(message)
            logger.warning("%s; nothing was deducted.", message)
            return False
        for line in breakdown:
            if line.amount <= 0:
                continue
            if line.kind == "gold":
                self.party.lose_gold(line.amount)
            elif line.kind == "jp":
                actor.lose_jp(line.amount)
            else:
                self.party.lose_item(line.kind, int(line.ref_id or 0), line.amount)
        return True

    def refund(self, actor: Actor, node: NodeDefinition, class_id: int | None = None) -> None:
        for line in self.build_cost_breakdown(node):
            if line.amount <= 0:
                continue
            if line.kind == "gold":
                self.party.gain_gold(line.amount)
            elif line.kind == "jp":
                actor.gain_jp(line.amount, class_id)
            else:
                self.party.gain_item(line.kind, int(line.ref_id or 0), line.amount)

    @staticmethod
    def sum_active_costs(
        tree: TreeDefinition,
        instance: TreeInstance,
        kind: CostKind,
        item_id: int | None = None,
    ) -> int:
        total = 0
        for node in tree.nodes:
            if not instance.is_active(node.uid):
                continue
            if kind == "gold":
                total += node.costs.gold
            elif kind == "jp":
                total += node.costs.jp
            else:
                total += sum(entry.amount for entry in node.costs.entries(kind) if item_id is None or entry.id == item_id)
        return total
