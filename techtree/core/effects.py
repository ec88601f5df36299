from __future__ import annotations

import logging
from typing import Callable, Iterator, Mapping

from .catalog import NodeCatalog
from .errors import ScriptEvaluationError
from .hosts import Actor, EventDispatcher, SwitchStore
from .models import NodeDefinition

logger = logging.getLogger(__name__)

ScriptHandler = Callable[[Actor, NodeDefinition], None]


class ScriptRegistry:
    """Named effect handlers that catalog nodes refer to by key.

    Nodes never carry code. The host registers a callable per key and the
    registry runs it with the acting actor and the node being toggled.
    """

    def __init__(self, handlers: Mapping[str, ScriptHandler] | None = None) -> None:
        self._handlers: dict[str, ScriptHandler] = dict(handlers or {})

    def __contains__(self, key: object) -> bool:
        return key in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._handlers))

    def register(self, key: str, handler: ScriptHandler) -> None:
        self._handlers[key] = handler

    def handler(self, key: str) -> Callable[[ScriptHandler], ScriptHandler]:
        def decorator(func: ScriptHandler) -> ScriptHandler:
            self.register(key, func)
            return func

        return decorator

    def run(self, key: str, actor: Actor, node: NodeDefinition) -> None:
        handler = self._handlers.get(key)
        if handler is None:
            raise ScriptEvaluationError(key, actor.name, LookupError(f"no handler registered for '{key}'"))
        try:
            handler(actor, node)
        except Exception as exc:
            raise ScriptEvaluationError(key, actor.name, exc) from exc


class EffectApplier:
    def __init__(
        self,
        catalog: NodeCatalog,
        switches: SwitchStore,
        events: EventDispatcher,
        scripts: ScriptRegistry | None = None,
    ) -> None:
        self.catalog = catalog
        self.switches = switches
        self.events = events
        self.scripts = scripts or ScriptRegistry()

    def set_switches(self, node: NodeDefinition, *, inverse: bool = False) -> None:
        for toggle in node.on_activate.switches:
            self.switches.set_value(toggle.id, (not toggle.value) if inverse else toggle.value)

    def learn_skills(self, actor: Actor, node: NodeDefinition) -> list[int]:
        learned: list[int] = []
        for skill_id in node.on_activate.skills:
            if not self.catalog.is_grantable_skill(skill_id):
                logger.debug("Skipping unknown skill %s on node '%s'", skill_id, node.uid)
                continue
            actor.learn_skill(skill_id)
            learned.append(skill_id)
        return learned

    def forget_skills(self, actor: Actor, node: NodeDefinition) -> list[int]:
        forgotten: list[int] = []
        for skill_id in node.on_activate.skills:
            if not self.catalog.is_grantable_skill(skill_id):
                continue
            actor.forget_skill(skill_id)
            forgotten.append(skill_id)
        return forgotten

    def add_stats(self, actor: Actor, node: NodeDefinition, sign: int = 1) -> None:
        for slot, delta in node.on_activate.stats.items():
            actor.add_param(slot, sign * delta)

    def _run_script(self, key: str | None, actor: Actor, node: NodeDefinition) -> bool:
        if key is None:
            return True
        try:
            self.scripts.run(key, actor, node)
        except ScriptEvaluationError:
            logger.exception("Script effect '%s' of node '%s' failed for actor %s (%s)", key, node.uid, actor.actor_id, actor.name)
            return False
        return True

    def run_activate_script(self, actor: Actor, node: NodeDefinition) -> bool:
        return self._run_script(node.on_activate.scripts.on_activate, actor, node)

    def run_deactivate_script(self, actor: Actor, node: NodeDefinition) -> bool:
        return self._run_script(node.on_activate.scripts.on_deactivate, actor, node)

    def fire_events(self, node: NodeDefinition) -> list[int]:
        fired: list[int] = []
        for event in node.on_activate.events:
            self.events.reserve_common_event(event.id, event.close)
            fired.append(event.id)
        return fired

    def apply_on_activate(self, actor: Actor, node: NodeDefinition, *, replay: bool = False) -> None:
        self.set_switches(node)
        self.learn_skills(actor, node)
        self.add_stats(actor, node)
        self.run_activate_script(actor, node)
        if not replay:
            self.fire_events(node)

    def apply_on_deactivate(self, actor: Actor, node: NodeDefinition) -> None:
        self.set_switches(node, inverse=True)
        self.forget_skills(actor, node)
        self.add_stats(actor, node, sign=-1)
        self.run_deactivate_script(actor, node)
