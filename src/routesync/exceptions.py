"""Custom exception hierarchy for routesync."""

from __future__ import annotations


class RouteSyncError(Exception):
    """Base exception for all routesync errors."""


class RouteSyncConfigError(RouteSyncError):
    """Invalid or missing configuration."""


class NotFoundError(RouteSyncError):
    """A referenced entity does not exist in its store."""

    def __init__(
        self,
        message: str,
        *,
        entity_type: str = "",
        entity_id: str = "",
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class ConflictingAssignmentError(RouteSyncError):
    """Driver or truck is already bound elsewhere, or the actor does not own the route.

    Raised by :class:`routesync.guard.DriverAssignmentGuard` before any
    write happens, so a failed attempt leaves every entity untouched.
    """


class InvalidTransitionError(RouteSyncError):
    """The requested change does not match any cascade rule.

    Examples: starting a route that is already in progress, completing a
    pickup stop that carries no transport job, or proposing two stops in
    progress at once.
    """


class CascadeFailureError(RouteSyncError):
    """A downstream write failed after the primary route write succeeded.

    Never propagated to callers of :class:`routesync.lifecycle.RouteLifecycle`;
    it is converted into a :class:`routesync.lifecycle.CascadeFailure`
    warning on the operation result.
    """

    def __init__(
        self,
        message: str,
        *,
        step: str = "",
        entity_type: str = "",
        entity_id: str = "",
    ) -> None:
        self.step = step
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)
