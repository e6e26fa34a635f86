"""Konfigurationsmanager: Laden, Speichern und Validieren.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.defaults import default_app_config
from config.schema import AppConfig

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── Kopfzeile und Abschnitte ───

_YAML_HEADER = f"""\
# ============================================
# Laborplan — Konfiguration
# Version: 1.0
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "calendar": (
        "Periodenraster",
        "Perioden 1-4 ganzjährig, 5-8 abhängig vom Sommerfenster (inklusive Grenzen).",
    ),
    "labs": (
        "Labore",
        "Die Kapazität gilt für jede Sitzung im Labor.",
    ),
    "classes": (
        "Klassen",
        "Klassenstärken; daraus wird die Teilnehmerzahl abgeleitet, "
        "wenn nur Klassen angegeben sind.",
    ),
    "store": (
        "Speicher",
        "backend: memory (lokale JSON-Datei) oder rest (HTTP-API).",
    ),
    "logging": (
        "Logging",
        None,
    ),
}


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "laborplan.yaml"

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else self.DEFAULT_CONFIG

    def first_run_check(self) -> bool:
        """True, solange unter `self.path` noch keine Laborplan-Config liegt."""
        return not self.path.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> AppConfig:
        """Liest die Laborplan-Config und validiert sie als AppConfig."""
        target = Path(path) if path is not None else self.path
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'python main.py init' aus, um eine Standardkonfiguration anzulegen."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return AppConfig.model_validate(dict(raw or {}))
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    def load_or_default(self) -> AppConfig:
        """Lädt die Config, fällt beim Erstaufruf auf die Standardwerte zurück."""
        if self.first_run_check():
            return default_app_config()
        return self.load()

    # ─── Speichern ───

    def save(self, config: AppConfig, path: Optional[Path] = None) -> None:
        """Speichere Config als YAML mit Abschnittskommentaren."""
        target = Path(path) if path is not None else self.path
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._to_commented_map(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    def _to_commented_map(self, config: AppConfig) -> CommentedMap:
        """AppConfig → CommentedMap mit Abschnittsüberschriften."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            if field not in cm:
                continue
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        if "store" in cm:
            store_map = CommentedMap(cm["store"])
            store_map.yaml_add_eol_comment("nur backend=rest", "timeout_seconds")
            cm["store"] = store_map

        return cm
