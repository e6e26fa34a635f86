"""Datenmodell für eine Unterrichtsperiode im Tagesraster."""

from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True)
class Period:
    """Eine der acht Perioden eines Labortages mit Uhrzeiten.

    Immutable (frozen=True), damit Perioden als Dict-Key nutzbar sind.
    """

    # Periodennummer (1-basiert, 1..8)
    index: int
    # Beginn "HH:MM"
    start: str
    # Ende "HH:MM"
    end: str

    @property
    def label(self) -> str:
        """Zeitspanne als Text, z.B. "08:00-08:50"."""
        return f"{self.start}-{self.end}"

    @property
    def start_time(self) -> time:
        return time.fromisoformat(self.start)

    @property
    def end_time(self) -> time:
        return time.fromisoformat(self.end)

    def __str__(self) -> str:
        return f"{self.index}. Periode ({self.label})"
