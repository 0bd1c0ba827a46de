"""Domain exceptions raised by the dispatch services."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for dispatch errors."""


class TrackingNotFound(DispatchError):
    def __init__(self, ticket_id: str):
        super().__init__(f"Tracking record not found for ticket {ticket_id}")
        self.ticket_id = ticket_id


class TrackingFinished(DispatchError):
    def __init__(self, ticket_id: str, finished_at=None):
        super().__init__(f"Ticket {ticket_id} processing already completed")
        self.ticket_id = ticket_id
        self.finished_at = finished_at


class TrackingExists(DispatchError):
    def __init__(self, ticket_id: str):
        super().__init__(f"Tracking record already exists for ticket {ticket_id}")
        self.ticket_id = ticket_id


class TicketContextError(DispatchError):
    """Ticket or organization data needed for a call is missing."""


class GatewayConfigError(DispatchError):
    """Call gateway credentials are missing or invalid."""
