"""Errors raised by the reservation lifecycle engine.

Routes map them to HTTP status codes; see ``app/api/v1/routes``.
"""


class LifecycleError(ValueError):
    """Base class for engine errors surfaced to the caller."""


class ValidationError(LifecycleError):
    """Malformed booking window, non-positive price or bad refund amount. Nothing was written."""


class NotFound(LifecycleError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(LifecycleError):
    def __init__(self, reservation_id: str, current: str, action: str):
        super().__init__(f"cannot {action} reservation {reservation_id} in status '{current}'")
        self.reservation_id = reservation_id
        self.current = current
        self.action = action


class UnitUnavailable(LifecycleError):
    def __init__(self, unit_id: str, availability: str):
        super().__init__(f"motorcycle {unit_id} is not available (currently '{availability}')")
        self.unit_id = unit_id
        self.availability = availability


class PropagationFailure(Exception):
    """A dependent store write failed after the reservation status was committed.

    Never raised out of a transition: it is logged, persisted in
    ``propagation_failures`` and returned in the transition result.
    """

    def __init__(self, store: str, reservation_id: str, error: str = ""):
        super().__init__(f"{store} propagation failed for reservation {reservation_id}: {error}")
        self.store = store
        self.reservation_id = reservation_id
        self.error = error
