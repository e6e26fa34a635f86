from pathlib import Path

from config.schema import AppConfig, StoreBackend
from store.base import BatchResult, BatchRow, BatchRowError, SessionStore
from store.memory import InMemoryStore
from store.rest import RestStore


def open_store(config: AppConfig) -> SessionStore:
    """Öffnet den konfigurierten Speicher.

    memory: lädt `store.data_path`, falls vorhanden, sonst leerer Speicher
    mit den Laboren und Klassen aus der Konfiguration.
    """
    if config.store.backend == StoreBackend.REST:
        return RestStore(config.store.base_url, timeout=config.store.timeout_seconds)
    path = Path(config.store.data_path)
    if path.exists():
        return InMemoryStore.load_json(path, calendar=config.calendar)
    return InMemoryStore.from_config(config)


__all__ = [
    "BatchResult", "BatchRow", "BatchRowError", "SessionStore",
    "InMemoryStore", "RestStore", "open_store",
]
