"""Load, normalise, and save user settings from DefaultUserSettings.yaml."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .catalog import Catalog, ModifierId, get_catalog
from .resources import get_resource_path

DEFAULT_SETTINGS_PATH = get_resource_path("Advisor/DefaultUserSettings.yaml")

QUEUE_LENGTH = 4

ComboId = int


class SettingsError(Exception):
    """Raised when the settings file is malformed."""


@dataclass
class LabeledCombo:
    """A user-curated target combo."""
    id: ComboId
    label: str
    combo: List[ModifierId] = field(default_factory=list)


@dataclass
class UserSettings:
    combo_catalog: List[LabeledCombo] = field(default_factory=list)
    combo_roster: List[ComboId] = field(default_factory=list)  # priority order
    forbidden_modifier_ids: Set[ModifierId] = field(default_factory=set)
    hotkey: str = "alt + 1"
    show_tiers: bool = False

    def find_combo(self, combo_id: ComboId) -> Optional[LabeledCombo]:
        for labeled in self.combo_catalog:
            if labeled.id == combo_id:
                return labeled
        return None

    def roster_combos(self) -> List[List[ModifierId]]:
        """Roster combos in priority order; roster ids with no catalog entry are skipped."""
        combos = []
        for combo_id in self.combo_roster:
            labeled = self.find_combo(combo_id)
            if labeled is not None:
                combos.append(labeled.combo)
        return combos

    def missing_roster_ids(self) -> List[ComboId]:
        return [combo_id for combo_id in self.combo_roster if self.find_combo(combo_id) is None]

    def get_filler_modifier_ids(self, catalog: Optional[Catalog] = None) -> Set[ModifierId]:
        """Ids neither required by a roster combo (directly or as a component) nor forbidden."""
        catalog = catalog or get_catalog()
        used: Set[ModifierId] = set()
        for combo in self.roster_combos():
            for modifier_id in combo:
                used.add(modifier_id)
                used.update(catalog.components[modifier_id])
        return {
            modifier_id
            for modifier_id in catalog.by_id
            if modifier_id not in used and modifier_id not in self.forbidden_modifier_ids
        }

    def to_dict(self) -> Dict[str, Any]:
        """Canonical camelCase mapping, used both for YAML and for cache keys."""
        return {
            "comboCatalog": [
                {"id": c.id, "label": c.label, "combo": list(c.combo)}
                for c in self.combo_catalog
            ],
            "comboRoster": list(self.combo_roster),
            "forbiddenModifierIds": sorted(self.forbidden_modifier_ids),
            "hotkey": self.hotkey,
            "showTiers": self.show_tiers,
        }


def default_settings() -> UserSettings:
    """Settings used when no settings file exists yet."""
    return UserSettings(
        combo_catalog=[
            LabeledCombo(0, "All the uniques", [57, 1, 11, 13]),
            LabeledCombo(1, "Divination stack", [55, 17, 51, 9]),
        ],
        combo_roster=[0, 1],
        forbidden_modifier_ids={56, 59, 60, 61},
        hotkey="alt + 1",
        show_tiers=False,
    )


def _coerce_id(value: Any, *, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise SettingsError(f"Invalid id for '{key}': {value!r}")
    try:
        parsed = int(value)
    except ValueError as exc:
        raise SettingsError(f"Invalid id for '{key}': {value!r}") from exc
    if parsed < 0:
        raise SettingsError(f"Negative id for '{key}': {value!r}")
    return parsed


def _parse_combo(raw: Any, index: int) -> LabeledCombo:
    if not isinstance(raw, dict):
        raise SettingsError(f"comboCatalog[{index}] must be a mapping, got {raw!r}")
    combo_id = _coerce_id(raw.get("id", index), key=f"comboCatalog[{index}].id")
    label = str(raw.get("label") or f"Unnamed #{combo_id}")
    combo = [_coerce_id(m, key=f"comboCatalog[{index}].combo") for m in raw.get("combo") or []]
    if len(combo) > QUEUE_LENGTH:
        raise SettingsError(f"Combo '{label}' has {len(combo)} modifiers (max {QUEUE_LENGTH})")
    if len(set(combo)) != len(combo):
        raise SettingsError(f"Combo '{label}' repeats a modifier: {combo}")
    return LabeledCombo(id=combo_id, label=label, combo=combo)


def settings_from_dict(raw: Dict[str, Any]) -> UserSettings:
    """Normalise a raw settings mapping into UserSettings."""
    if not isinstance(raw, dict):
        raise SettingsError(f"Settings must be a mapping, got {type(raw).__name__}")

    combo_catalog = [_parse_combo(entry, i) for i, entry in enumerate(raw.get("comboCatalog") or [])]
    combo_roster = [_coerce_id(c, key="comboRoster") for c in raw.get("comboRoster") or []]
    forbidden = {_coerce_id(m, key="forbiddenModifierIds") for m in raw.get("forbiddenModifierIds") or []}

    return UserSettings(
        combo_catalog=combo_catalog,
        combo_roster=combo_roster,
        forbidden_modifier_ids=forbidden,
        hotkey=str(raw.get("hotkey", "alt + 1")),
        show_tiers=bool(raw.get("showTiers", False)),
    )


def load_settings(path: Optional[Path] = None) -> UserSettings:
    """Load and normalise settings YAML into UserSettings."""
    settings_path = path or DEFAULT_SETTINGS_PATH
    if not settings_path.exists():
        return default_settings()

    try:
        with settings_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"Invalid YAML in {settings_path}: {exc}") from exc

    return settings_from_dict(raw)


def save_settings(settings: UserSettings, path: Optional[Path] = None) -> None:
    """
    Save UserSettings back to YAML file.

    Parameters
    ----------
    settings : UserSettings
        The settings to save
    path : Path, optional
        Path to save to. Defaults to DefaultUserSettings.yaml
    """
    settings_path = path or DEFAULT_SETTINGS_PATH
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with settings_path.open("w", encoding="utf-8") as fh:
        yaml.dump(settings.to_dict(), fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
