"""Core tech tree progression modules."""

from .catalog import NodeCatalog, catalog_hash, load_catalog
from .class_binding import ClassBindingManager, ClassChangeReport
from .costs import CostLedger, CostLine
from .effects import EffectApplier, ScriptRegistry
from .errors import (
    AffordabilityViolation,
    CatalogIssue,
    LookupFailure,
    ScriptEvaluationError,
    TechtreeValidationError,
)
from .graph import UnlockGraph
from .hosts import ActorState, EventQueue, PartyState, SwitchBoard
from .models import NodeDefinition, TechtreeProgress, TreeDefinition, TreeInstance
from .navigator import CursorNavigator
from .progression import TechtreeService, UnlockResult
from .save_system import (
    TechtreeSaveData,
    extract_save_contents,
    load_progress,
    make_save_contents,
    migrate_save,
    save_progress,
)
from .settings import ClassChangePolicy, TechtreeSettings, load_settings

__all__ = [
    "ActorState",
    "AffordabilityViolation",
    "CatalogIssue",
    "ClassBindingManager",
    "ClassChangePolicy",
    "ClassChangeReport",
    "CostLedger",
    "CostLine",
    "CursorNavigator",
    "EffectApplier",
    "EventQueue",
    "LookupFailure",
    "NodeCatalog",
    "NodeDefinition",
    "PartyState",
    "ScriptEvaluationError",
    "ScriptRegistry",
    "SwitchBoard",
    "TechtreeProgress",
    "TechtreeSaveData",
    "TechtreeService",
    "TechtreeSettings",
    "TechtreeValidationError",
    "TreeDefinition",
    "TreeInstance",
    "UnlockGraph",
    "UnlockResult",
    "catalog_hash",
    "extract_save_contents",
    "load_catalog",
    "load_progress",
    "load_settings",
    "make_save_contents",
    "migrate_save",
    "save_progress",
]
