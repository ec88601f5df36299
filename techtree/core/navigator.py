from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from .catalog import NodeCatalog
from .models import NodeDefinition, TreeDefinition

logger = logging.getLogger(__name__)

Direction = Literal["up", "down", "left", "right"]
DIRECTIONS: tuple[Direction, ...] = ("up", "down", "left", "right")


@dataclass(slots=True)
class CursorNavigator:
    """Cursor over the sparse (depth, lane) grid of one tree.

    When the cell in the requested direction is empty the cursor keeps
    searching and turns at the grid edges until it lands on a node.
    """

    catalog: NodeCatalog
    tree: TreeDefinition
    max_depth: int
    max_lanes: int
    visible_depths: int = 3
    visible_lanes: int = 3
    depth: int = 1
    lane: int = 1
    first_visible_depth: int = 1
    first_visible_lane: int = 1

    @classmethod
    def for_tree(
        cls,
        catalog: NodeCatalog,
        tree: TreeDefinition,
        *,
        visible_depths: int = 3,
        visible_lanes: int = 3,
    ) -> "CursorNavigator":
        max_depth, max_lanes = catalog.grid_bounds(tree)
        navigator = cls(
            catalog=catalog,
            tree=tree,
            max_depth=max_depth,
            max_lanes=max_lanes,
            visible_depths=max(1, visible_depths),
            visible_lanes=max(1, visible_lanes),
        )
        if tree.nodes:
            first = tree.nodes[0]
            navigator.depth, navigator.lane = first.depth, first.lane
            navigator.first_visible_depth = max(1, first.depth - 1)
            navigator.first_visible_lane = max(1, first.lane - 1)
            navigator.ensure_visible()
        return navigator

    @property
    def last_visible_depth(self) -> int:
        return self.first_visible_depth + self.visible_depths - 1

    @property
    def last_visible_lane(self) -> int:
        return self.first_visible_lane + self.visible_lanes - 1

    @property
    def position(self) -> tuple[int, int]:
        return self.depth, self.lane

    @property
    def selected_node(self) -> NodeDefinition | None:
        return self.catalog.find_node_at(self.tree, self.depth, self.lane)

    def _node_at(self, depth: int, lane: int) -> NodeDefinition | None:
        if depth < 1 or lane < 1 or depth > self.max_depth or lane > self.max_lanes:
            return None
        return self.catalog.find_node_at(self.tree, depth, lane)

    def _redirect(self, depth: int, lane: int, direction: Direction) -> tuple[int, int, Direction]:
        at_far_corner = depth >= self.max_depth and lane >= self.max_lanes
        at_origin = depth <= 1 and lane <= 1
        if direction == "right":
            if at_far_corner:
                return depth - 1, lane, "left"
            if depth >= self.max_depth:
                return self.max_depth, lane + 1, "down"
            return depth + 1, lane, "right"
        if direction == "left":
            if at_origin:
                return 2, 1, "right"
            if depth <= 1:
                return 1, lane - 1, "up"
            return depth - 1, lane, "left"
        if direction == "down":
            if at_far_corner:
                return self.max_depth, self.max_lanes - 1, "up"
            if lane >= self.max_lanes:
                return depth + 1, self.max_lanes, "right"
            return depth, lane + 1, "down"
        if at_origin:
            return 1, 2, "down"
        if lane <= 1:
            return depth - 1, 1, "left"
        return depth, lane - 1, "up"

    def _search(self, depth: int, lane: int, direction: Direction) -> tuple[int, int] | None:
        seen: set[tuple[int, int, Direction]] = set()
        while (depth, lane, direction) not in seen:
            seen.add((depth, lane, direction))
            if self._node_at(depth, lane) is not None:
                return depth, lane
            depth, lane, direction = self._redirect(depth, lane, direction)
        return None

    def move(self, direction: Direction) -> NodeDefinition | None:
        if self.selected_node is None:
            return None
        depth, lane = self.depth, self.lane
        if direction == "right":
            if depth >= self.max_depth:
                return self.selected_node
            target = (depth + 1, lane)
        elif direction == "left":
            if depth <= 1:
                return self.selected_node
            target = (depth - 1, lane)
        elif direction == "down":
            if lane >= self.max_lanes:
                return self.selected_node
            target = (depth, lane + 1)
        elif direction == "up":
            if lane <= 1:
                return self.selected_node
            target = (depth, lane - 1)
        else:
            raise ValueError(f"Unknown direction '{direction}'.")

        found = self._search(target[0], target[1], direction)
        if found is None:
            logger.debug("No node reachable moving %s from %s in tree '%s'", direction, self.position, self.tree.uid)
        else:
            self.depth, self.lane = found
        self.ensure_visible()
        return self.selected_node

    def scroll(self, delta: int) -> NodeDefinition | None:
        if delta > 0:
            return self.move("right")
        if delta < 0:
            return self.move("left")
        return self.selected_node

    def select(self, depth: int, lane: int) -> NodeDefinition | None:
        node = self._node_at(depth, lane)
        if node is None:
            return None
        self.depth, self.lane = depth, lane
        self.ensure_visible()
        return node

    def ensure_visible(self) -> None:
        if self.lane < self.first_visible_lane:
            self.first_visible_lane = self.lane
        if self.lane > self.last_visible_lane:
            self.first_visible_lane = self.lane - self.visible_lanes + 1
        if self.depth < self.first_visible_depth:
            self.first_visible_depth = self.depth
        if self.depth > self.last_visible_depth:
            self.first_visible_depth = self.depth - self.visible_depths + 1

    def is_on_screen(self, node: NodeDefinition) -> bool:
        return (
            self.first_visible_depth <= node.depth <= self.last_visible_depth
            and self.first_visible_lane <= node.lane <= self.last_visible_lane
        )
