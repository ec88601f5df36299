from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal, Optional

import typer
from pydantic import Field, ValidationError
from rich.console import Console
from rich.table import Table

from techtree.core.catalog import NodeCatalog, load_catalog
from techtree.core.effects import ScriptHandler, ScriptRegistry
from techtree.core.errors import TechtreeValidationError
from techtree.core.hosts import Actor, ActorState, EventQueue, PartyState, SwitchBoard
from techtree.core.models import STAT_NAMES, NodeDefinition, StrictModel
from techtree.core.progression import TechtreeService
from techtree.core.save_system import make_save_contents, save_progress
from techtree.core.settings import load_settings
from techtree.services.logger import configure_logging

app = typer.Typer(add_completion=False, help="Validate tech tree catalogs and replay progression scenarios.")
console = Console()
logger = logging.getLogger("techtree.cli")

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"

StepOp = Literal["unlock", "activate", "deactivate", "grant", "reset", "reset_all", "change_class", "resync"]


class ScenarioStep(StrictModel):
    op: StepOp
    tree: str | None = None
    node: str | None = None
    refund: bool = True
    class_id: int | None = Field(default=None, alias="classId", ge=1)


class Scenario(StrictModel):
    actor: ActorState
    party: PartyState = Field(default_factory=PartyState)
    switches: SwitchBoard = Field(default_factory=SwitchBoard)
    steps: list[ScenarioStep] = Field(default_factory=list)


def _load_or_exit(content_dir: Path, max_skill_id: int | None) -> NodeCatalog:
    try:
        return load_catalog(content_dir, max_skill_id=max_skill_id)
    except TechtreeValidationError as exc:
        console.print(f"[bold red]Catalog load failed:[/bold red] {exc}")
        raise typer.Exit(1) from exc


def _echo_script(key: str) -> ScriptHandler:
    def handler(actor: Actor, node: NodeDefinition) -> None:
        logger.info("script '%s' ran for %s on node '%s'", key, actor.name, node.uid)

    return handler


def _echo_scripts(catalog: NodeCatalog) -> ScriptRegistry:
    registry = ScriptRegistry()
    for tree in catalog.trees:
        for node in tree.nodes:
            hooks = node.on_activate.scripts
            for key in (hooks.on_activate, hooks.on_deactivate):
                if key and key not in registry:
                    registry.register(key, _echo_script(key))
    return registry


def _cost_text(node: NodeDefinition) -> str:
    parts = []
    if node.costs.gold:
        parts.append(f"{node.costs.gold}g")
    if node.costs.jp:
        parts.append(f"{node.costs.jp}jp")
    for label, entries in (("item", node.costs.items), ("weapon", node.costs.weapons), ("armor", node.costs.armors)):
        parts.extend(f"{entry.amount}x {label}#{entry.id}" for entry in entries)
    return ", ".join(parts) or "-"


def _effects_text(node: NodeDefinition) -> str:
    effects = node.on_activate
    parts = []
    if effects.skills:
        parts.append("skills " + ",".join(str(skill_id) for skill_id in effects.skills))
    parts.extend(f"{STAT_NAMES[slot]}{delta:+d}" for slot, delta in effects.stats.items())
    parts.extend(f"sw{toggle.id}={'on' if toggle.value else 'off'}" for toggle in effects.switches)
    parts.extend(f"event {event.id}" for event in effects.events)
    if effects.scripts.on_activate:
        parts.append(f"script {effects.scripts.on_activate}")
    return "; ".join(parts) or "-"


def _run_step(service: TechtreeService, actor: ActorState, step: ScenarioStep) -> str:
    if step.op in {"unlock", "activate", "deactivate"} and (step.tree is None or step.node is None):
        return "needs tree and node"
    if step.op in {"grant", "reset"} and step.tree is None:
        return "needs tree"
    if step.op == "unlock":
        result = service.unlock_node(actor, step.tree, step.node)
        return result.reason if not result.ok else f"{result.reason} (animation {result.animation_id or '-'})"
    if step.op == "activate":
        return "activated" if service.activate_node(actor, step.tree, step.node) else "no change"
    if step.op == "deactivate":
        return "deactivated" if service.deactivate_node(actor, step.tree, step.node) else "no change"
    if step.op == "grant":
        return "granted" if service.grant_tree(actor, step.tree) is not None else "missing tree"
    if step.op == "reset":
        return f"{service.reset_tree(actor, step.tree, refund=step.refund)} node(s) reset"
    if step.op == "reset_all":
        return f"{service.reset_all_trees(actor, refund=step.refund)} node(s) reset"
    if step.op == "change_class":
        if step.class_id is None:
            return "needs classId"
        report = service.change_class(actor, step.class_id)
        return f"class {report.old_class_id}->{report.new_class_id}, revoked {report.revoked_skills}, granted {report.granted_skills}"
    replayed = service.resync_actor(actor)
    return f"replayed {sum(len(uids) for uids in replayed.values())} node(s)"


@app.command()
def validate(
    content_dir: Path = typer.Option(DEFAULT_CONTENT_DIR, "--content-dir", help="Directory holding techtrees.json."),
    max_skill_id: Optional[int] = typer.Option(None, "--max-skill-id", help="Skill ids at or above this are reported."),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 when any issue is found."),
) -> None:
    catalog = _load_or_exit(content_dir, max_skill_id)
    console.print(
        f"[bold green]Loaded[/bold green] {len(catalog.trees)} tree(s), "
        f"{sum(len(tree.nodes) for tree in catalog.trees)} node(s). Hash {catalog.content_hash}"
    )
    if not catalog.issues:
        console.print("No catalog issues.")
        return

    table = Table(title="Catalog Issues")
    table.add_column("Kind", style="yellow", no_wrap=True)
    table.add_column("Tree", style="cyan")
    table.add_column("Node", style="cyan")
    table.add_column("Message", style="white")
    for issue in catalog.issues:
        table.add_row(issue.kind, issue.tree_uid, issue.node_uid or "-", issue.message)
    console.print(table)
    if strict:
        raise typer.Exit(1)


@app.command()
def show(
    tree_uid: str = typer.Argument(..., help="Tree uid to list."),
    content_dir: Path = typer.Option(DEFAULT_CONTENT_DIR, "--content-dir", help="Directory holding techtrees.json."),
) -> None:
    catalog = _load_or_exit(content_dir, None)
    tree = catalog.find_tree(tree_uid)
    if tree is None:
        console.print(f"[bold red]Unknown tree '{tree_uid}'.[/bold red]")
        raise typer.Exit(1)

    max_depth, max_lanes = catalog.grid_bounds(tree)
    table = Table(title=f"{tree.header or tree.uid} ({max_depth} depth x {max_lanes} lanes)")
    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Pos", style="white")
    table.add_column("Parents", style="white")
    table.add_column("Cost", style="yellow")
    table.add_column("Effects", style="green")
    for node in tree.nodes:
        parents = ", ".join(node.parent_ids) or "-"
        if node.parent_ids:
            parents = f"{parents} (need {node.needed_parents})"
        table.add_row(node.uid, f"{node.depth},{node.lane}", parents, _cost_text(node), _effects_text(node))
    console.print(table)


@app.command()
def run(
    scenario_path: Path = typer.Argument(..., help="JSON scenario with actor, party and steps."),
    content_dir: Path = typer.Option(DEFAULT_CONTENT_DIR, "--content-dir", help="Directory holding techtrees.json."),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Optional settings JSON."),
    save_path: Optional[Path] = typer.Option(None, "--save", help="Write the resulting progress here."),
    logs_dir: Optional[Path] = typer.Option(None, "--logs-dir", help="Write latest.log and progression.log here."),
) -> None:
    if logs_dir is not None:
        configure_logging(logs_dir, console=False)
    catalog = _load_or_exit(content_dir, None)
    try:
        scenario = Scenario.model_validate(json.loads(scenario_path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[bold red]Scenario load failed:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    events = EventQueue()
    service = TechtreeService(
        catalog,
        scenario.party,
        scenario.switches,
        events,
        scripts=_echo_scripts(catalog),
        settings=load_settings(settings_path),
    )
    actor = scenario.actor
    service.setup_actor(actor)

    steps = Table(title="Scenario")
    steps.add_column("#", style="white", no_wrap=True)
    steps.add_column("Op", style="cyan")
    steps.add_column("Target", style="white")
    steps.add_column("Result", style="green")
    for index, step in enumerate(scenario.steps, start=1):
        target = "/".join(part for part in (step.tree, step.node) if part) or (str(step.class_id) if step.class_id else "-")
        steps.add_row(str(index), step.op, target, _run_step(service, actor, step))
    console.print(steps)

    summary = Table(title="Final State")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Actor", f"{actor.name} (class {actor.class_id}, level {actor.level})")
    summary.add_row("Gold", str(scenario.party.gold))
    summary.add_row("JP", ", ".join(f"class {class_id}={jp}" for class_id, jp in sorted(actor.jp_by_class.items())) or "-")
    summary.add_row("Skills", ", ".join(str(skill_id) for skill_id in sorted(actor.skills)) or "-")
    summary.add_row(
        "Params",
        ", ".join(f"{STAT_NAMES[slot]}{delta:+d}" for slot, delta in sorted(actor.param_plus.items()) if delta) or "-",
    )
    for instance in actor.progress.trees:
        origin = "character" if instance.origin_class_id is None else f"class {instance.origin_class_id}"
        summary.add_row(f"Tree {instance.tree_uid}", f"{origin}: {', '.join(sorted(instance.active_node_ids)) or '-'}")
    summary.add_row("Events", ", ".join(str(event_id) for event_id in events.reserved) or "-")
    console.print()
    console.print(summary)

    if save_path is not None:
        save_progress(make_save_contents(catalog, [actor]), save_path)
        console.print(f"\n[bold green]Saved progress:[/bold green] {save_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
