from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from .errors import CatalogIssue, TechtreeValidationError
from .models import CatalogBindings, NodeDefinition, TreeDefinition

logger = logging.getLogger(__name__)

TREES_FILE = "techtrees.json"
BINDINGS_FILE = "bindings.json"

_TREES_ADAPTER = TypeAdapter(list[TreeDefinition])


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise TechtreeValidationError(f"Missing catalog file: {path}") from exc
    except json.JSONDecodeError as exc:
        raise TechtreeValidationError(f"Invalid JSON in {path.name}: {exc.msg} at line {exc.lineno}") from exc


def _schema_errors(source: str, exc: ValidationError) -> list[str]:
    errors = []
    for issue in exc.errors():
        issue_path = ".".join(str(part) for part in issue.get("loc", [])) or "(root)"
        errors.append(f"{source}:{issue_path}: {issue.get('msg', 'validation error')}")
    return errors


def _parse_trees(payload: Any, source: str) -> list[TreeDefinition]:
    try:
        return _TREES_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise TechtreeValidationError(f"Schema validation failed for {source}.", _schema_errors(source, exc)) from exc


def _parse_bindings(payload: Any, source: str) -> CatalogBindings:
    try:
        return CatalogBindings.model_validate(payload or {})
    except ValidationError as exc:
        raise TechtreeValidationError(f"Schema validation failed for {source}.", _schema_errors(source, exc)) from exc


def _assert_unique_ids(kind: str, scope: str, uids: Iterable[str]) -> None:
    seen: set[str] = set()
    for uid in uids:
        if uid in seen:
            raise TechtreeValidationError(f"Duplicate {kind} uid '{uid}' in {scope}.")
        seen.add(uid)


def catalog_hash(trees: Iterable[TreeDefinition]) -> str:
    payload = [tree.model_dump(mode="json", by_alias=True) for tree in trees]
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


class NodeCatalog:
    """Read-only set of tree definitions shared by every actor."""

    def __init__(
        self,
        trees: Iterable[TreeDefinition],
        bindings: CatalogBindings | None = None,
        *,
        max_skill_id: int | None = None,
    ) -> None:
        self.trees: tuple[TreeDefinition, ...] = tuple(trees)
        self.bindings = bindings or CatalogBindings()
        self.max_skill_id = max_skill_id

        _assert_unique_ids("tree", "catalog", (tree.uid for tree in self.trees))
        self._tree_by_uid: dict[str, TreeDefinition] = {}
        self._node_by_uid: dict[str, dict[str, NodeDefinition]] = {}
        self._node_by_position: dict[str, dict[tuple[int, int], NodeDefinition]] = {}
        self._children: dict[str, dict[str, tuple[str, ...]]] = {}
        for tree in self.trees:
            _assert_unique_ids("node", f"tree '{tree.uid}'", (node.uid for node in tree.nodes))
            self._tree_by_uid[tree.uid] = tree
            self._node_by_uid[tree.uid] = {node.uid: node for node in tree.nodes}
            positions: dict[tuple[int, int], NodeDefinition] = {}
            for node in tree.nodes:
                positions.setdefault(node.position, node)
            self._node_by_position[tree.uid] = positions
            self._children[tree.uid] = self._index_children(tree)

        self.content_hash = catalog_hash(self.trees)
        self.issues: list[CatalogIssue] = self._collect_issues()
        self.invalid_skill_ids: frozenset[int] = frozenset(
            skill_id for tree in self.trees for node in tree.nodes for skill_id in node.on_activate.skills if not self._skill_in_range(skill_id)
        )

    @classmethod
    def from_payload(
        cls,
        trees: Any,
        bindings: Any = None,
        *,
        max_skill_id: int | None = None,
        source: str = TREES_FILE,
    ) -> "NodeCatalog":
        catalog = cls(
            _parse_trees(trees, source),
            _parse_bindings(bindings, BINDINGS_FILE),
            max_skill_id=max_skill_id,
        )
        catalog.report_issues()
        return catalog

    def report_issues(self) -> None:
        for issue in self.issues:
            logger.warning("Catalog issue %s", issue.format())

    @staticmethod
    def _index_children(tree: TreeDefinition) -> dict[str, tuple[str, ...]]:
        children: dict[str, list[str]] = {node.uid: [] for node in tree.nodes}
        for node in tree.nodes:
            for parent_uid in node.parent_ids:
                if parent_uid in children:
                    children[parent_uid].append(node.uid)
        return {uid: tuple(kids) for uid, kids in children.items()}

    def _skill_in_range(self, skill_id: int) -> bool:
        if skill_id <= 0:
            return False
        return self.max_skill_id is None or skill_id < self.max_skill_id

    def _collect_issues(self) -> list[CatalogIssue]:
        issues: list[CatalogIssue] = []
        for tree in self.trees:
            nodes = self._node_by_uid[tree.uid]
            positions = self._node_by_position[tree.uid]
            for node in tree.nodes:
                for skill_id in node.on_activate.skills:
                    if not self._skill_in_range(skill_id):
                        issues.append(
                            CatalogIssue("skill", tree.uid, node.uid, f"skill {skill_id} does not exist; granting it will be skipped.")
                        )
                for parent_uid in node.parent_ids:
                    if parent_uid not in nodes:
                        issues.append(CatalogIssue("parent", tree.uid, node.uid, f"parent '{parent_uid}' not found in tree."))
                if node.needed_parents > len(node.parent_ids):
                    issues.append(
                        CatalogIssue(
                            "needed_parents",
                            tree.uid,
                            node.uid,
                            f"needs {node.needed_parents} parents but lists {len(node.parent_ids)}.",
                        )
                    )
                first = positions[node.position]
                if first is not node:
                    issues.append(
                        CatalogIssue(
                            "position",
                            tree.uid,
                            node.uid,
                            f"shares depth {node.depth} lane {node.lane} with '{first.uid}', which wins lookups.",
                        )
                    )
        for owner, table in (("actor", self.bindings.actors), ("class", self.bindings.classes)):
            for owner_id, tree_uids in table.items():
                for tree_uid in tree_uids:
                    if tree_uid not in self._tree_by_uid:
                        issues.append(CatalogIssue("binding", tree_uid, None, f"{owner} {owner_id} references a missing tree."))
        return issues

    def find_tree(self, uid: str) -> TreeDefinition | None:
        return self._tree_by_uid.get(uid)

    def find_node(self, tree: TreeDefinition, node_uid: str) -> NodeDefinition | None:
        return self._node_by_uid.get(tree.uid, {}).get(node_uid)

    def find_node_at(self, tree: TreeDefinition, depth: int, lane: int) -> NodeDefinition | None:
        return self._node_by_position.get(tree.uid, {}).get((depth, lane))

    def children_of(self, tree: TreeDefinition, node_uid: str) -> tuple[str, ...]:
        return self._children.get(tree.uid, {}).get(node_uid, ())

    def grid_bounds(self, tree: TreeDefinition) -> tuple[int, int]:
        max_depth = max((node.depth for node in tree.nodes), default=0)
        max_lanes = max((node.lane for node in tree.nodes), default=0)
        return max_depth, max_lanes

    def actor_tree_uids(self, actor_id: int) -> tuple[str, ...]:
        return self.bindings.actors.get(actor_id, ())

    def class_tree_uids(self, class_id: int) -> tuple[str, ...]:
        return self.bindings.classes.get(class_id, ())

    def is_grantable_skill(self, skill_id: int) -> bool:
        return self._skill_in_range(skill_id)

    def resolve_animation_id(self, tree: TreeDefinition, node: NodeDefinition, default: int | None = None) -> int | None:
        animation = node.on_activate.animation
        if animation is not None and animation.id:
            return animation.id
        if tree.animation is not None and tree.animation.id:
            return tree.animation.id
        return default or None


def load_catalog(content_dir: Path | str, *, max_skill_id: int | None = None) -> NodeCatalog:
    base_path = Path(content_dir)
    trees = _load_json(base_path / TREES_FILE)
    bindings_path = base_path / BINDINGS_FILE
    bindings = _load_json(bindings_path) if bindings_path.exists() else None
    return NodeCatalog.from_payload(trees, bindings, max_skill_id=max_skill_id)
