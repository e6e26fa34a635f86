from models.lab import Lab
from models.period import Period
from models.session import DesiredEdit, Session, SessionPayload, split_class_names
from models.week import WeekDay, WeekSchedule, WeekSlot

__all__ = [
    "Lab",
    "Period",
    "Session",
    "SessionPayload",
    "DesiredEdit",
    "split_class_names",
    "WeekSlot",
    "WeekDay",
    "WeekSchedule",
]
