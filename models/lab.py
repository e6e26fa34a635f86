"""Datenmodell für ein Labor (Pydantic v2)."""

from pydantic import BaseModel, Field


class Lab(BaseModel):
    """Repräsentiert ein Labor.

    Die Kapazität ist für jede Sitzung im Labor maßgeblich und wird nicht
    pro Sitzung gespeichert.
    """

    id: int
    name: str            # "W116"
    capacity: int = Field(ge=0)
