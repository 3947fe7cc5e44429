"""Domain errors raised by services.

Services raise these and never build HTTP responses; ``app.api.http_errors``
translates them at the application boundary and the websocket gateway turns
them into ``error`` frames.
"""

from __future__ import annotations


class InvalidInput(ValueError):
    code = "invalid_input"


class NotFound(ValueError):
    code = "not_found"


class InvalidState(ValueError):
    code = "invalid_state"


class Conflict(ValueError):
    code = "conflict"


class Forbidden(PermissionError):
    code = "forbidden"


class StoreUnavailable(RuntimeError):
    code = "store_unavailable"


DomainError = (InvalidInput, NotFound, InvalidState, Conflict, Forbidden, StoreUnavailable)
