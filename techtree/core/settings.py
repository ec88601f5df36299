from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClassChangePolicy(BaseModel):
    model_config = ConfigDict(extra="ignore")

    unlearn: bool = True
    relearn: bool = True
    remove_stats: bool = True
    readd_stats: bool = True
    run_deactivate_eval: bool = True
    run_activate_eval: bool = True
    reset_on_class_change: bool = False

    @classmethod
    def all_off(cls) -> "ClassChangePolicy":
        return cls(
            unlearn=False,
            relearn=False,
            remove_stats=False,
            readd_stats=False,
            run_deactivate_eval=False,
            run_activate_eval=False,
            reset_on_class_change=False,
        )


class TechtreeSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    active_nodes_always_visible: bool = False
    display_only: bool = False
    update_trees_on_load: bool = False
    default_animation_id: int | None = Field(default=15, ge=0)
    visible_lanes: int = Field(default=3, ge=1, le=12)
    visible_depths: int = Field(default=3, ge=1, le=24)
    class_change: ClassChangePolicy = Field(default_factory=ClassChangePolicy)

    def as_dict(self) -> dict[str, Any]:
        return json.loads(self.model_dump_json())


def merge_settings(payload: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(payload, dict):
        payload = {}
    return TechtreeSettings.model_validate(payload).as_dict()


def default_settings() -> dict[str, Any]:
    return TechtreeSettings().as_dict()


def load_settings(path: Path | str | None) -> TechtreeSettings:
    if path is None:
        return TechtreeSettings()
    settings_path = Path(path)
    if not settings_path.exists():
        return TechtreeSettings()
    payload = json.loads(settings_path.read_text(encoding="utf-8"))
    return TechtreeSettings.model_validate(merge_settings(payload))
