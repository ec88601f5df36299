from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

IssueKind = Literal["skill", "parent", "needed_parents", "position", "binding"]


class TechtreeValidationError(ValueError):
    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        suffix = "\n".join(self.details)
        super().__init__(f"{message}\n{suffix}" if suffix else message)


class LookupFailure(KeyError):
    """Unknown tree or node uid for an actor."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ScriptEvaluationError(RuntimeError):
    def __init__(self, key: str, actor_name: str, cause: BaseException | None = None) -> None:
        self.key = key
        self.actor_name = actor_name
        self.cause = cause
        reason = f": {cause!r}" if cause is not None else ""
        super().__init__(f"Script '{key}' failed for {actor_name}{reason}")


class AffordabilityViolation(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class CatalogIssue:
    """Non-fatal problem found while loading a catalog."""

    kind: IssueKind
    tree_uid: str
    node_uid: str | None
    message: str

    def format(self) -> str:
        where = self.tree_uid if self.node_uid is None else f"{self.tree_uid}/{self.node_uid}"
        return f"[{self.kind}] {where}: {self.message}"
