from config.schema import (
    AppConfig,
    CalendarConfig,
    ClassRosterDef,
    LabDef,
    PeriodTimeDef,
    SeasonConfig,
)


def default_calendar() -> CalendarConfig:
    """Standard-Periodenraster der Labore.

    Jede Periode dauert 50 Minuten, kleine Pause 10 Minuten,
    große Pause 20 Minuten.

    Vormittag (ganzjährig):
    1. Periode  08:00 - 08:50
    2. Periode  09:00 - 09:50
       ── große Pause ──
    3. Periode  10:10 - 11:00
    4. Periode  11:10 - 12:00

    Nachmittag Sommer (01.05. - 07.10.)   Nachmittag Winter
    5. Periode  14:30 - 15:20             14:00 - 14:50
    6. Periode  15:30 - 16:20             15:00 - 15:50
    7. Periode  16:40 - 17:30             16:10 - 17:00
    8. Periode  17:40 - 18:30             17:10 - 18:00
    """
    return CalendarConfig(
        morning=[
            PeriodTimeDef(index=1, start="08:00", end="08:50"),
            PeriodTimeDef(index=2, start="09:00", end="09:50"),
            PeriodTimeDef(index=3, start="10:10", end="11:00"),
            PeriodTimeDef(index=4, start="11:10", end="12:00"),
        ],
        summer_afternoon=[
            PeriodTimeDef(index=5, start="14:30", end="15:20"),
            PeriodTimeDef(index=6, start="15:30", end="16:20"),
            PeriodTimeDef(index=7, start="16:40", end="17:30"),
            PeriodTimeDef(index=8, start="17:40", end="18:30"),
        ],
        winter_afternoon=[
            PeriodTimeDef(index=5, start="14:00", end="14:50"),
            PeriodTimeDef(index=6, start="15:00", end="15:50"),
            PeriodTimeDef(index=7, start="16:10", end="17:00"),
            PeriodTimeDef(index=8, start="17:10", end="18:00"),
        ],
        season=SeasonConfig(summer_start="05-01", summer_end="10-07"),
    )


def default_labs() -> list[LabDef]:
    """Die fünf Labore des Standorts mit ihren Platzkapazitäten."""
    return [
        LabDef(id=1, name="W116", capacity=40),
        LabDef(id=2, name="W108", capacity=36),
        LabDef(id=3, name="W106", capacity=32),
        LabDef(id=4, name="W102", capacity=30),
        LabDef(id=5, name="O131", capacity=28),
    ]


def default_classes() -> list[ClassRosterDef]:
    """Beispiel-Klassenstärken für die Teilnehmer-Ableitung."""
    return [
        ClassRosterDef(name="Informatik 1", student_count=18),
        ClassRosterDef(name="Informatik 2", student_count=17),
        ClassRosterDef(name="Elektrotechnik 1", student_count=22),
        ClassRosterDef(name="Mechatronik 1", student_count=15),
    ]


def default_app_config() -> AppConfig:
    """Vollständige Standardkonfiguration (lokaler JSON-Speicher)."""
    return AppConfig(
        title="Laborplan",
        calendar=default_calendar(),
        labs=default_labs(),
        classes=default_classes(),
    )
