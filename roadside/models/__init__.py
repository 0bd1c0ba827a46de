"""SQLAlchemy ORM models for the dispatch database."""

from roadside.models.base import Base
from roadside.models.tracking import TrackingRecord
from roadside.models.mechanic_queue import MechanicQueueEntry
from roadside.models.ticket import Ticket, OrganizationCallConfig
from roadside.models.call_activity import CallActivity

__all__ = [
    "Base", "TrackingRecord", "MechanicQueueEntry",
    "Ticket", "OrganizationCallConfig", "CallActivity",
]
