"""
Service Exceptions

Every error raised on purpose by the service derives from CarwashError so the
API layer can map it to a status code in one place.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from carwash.visits.schemas import PurgeResult


class CarwashError(Exception):
    """Base class for service errors"""


class InvalidArgumentError(CarwashError, ValueError):
    """Bad input detected before any I/O"""


class NotFoundError(CarwashError, LookupError):
    """Target entity does not exist"""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class MemberNotFoundError(NotFoundError):
    """Member record missing for an id"""


class NoWashesRemainingError(CarwashError):
    """Prepaid balance is exhausted"""

    def __init__(self, member_id: str):
        super().__init__(f"No prepaid washes remaining for {member_id}")
        self.member_id = member_id


class TransactionAbortedError(CarwashError):
    """Read-modify-write gave up after repeated write conflicts"""

    def __init__(self, key: str, attempts: int, target: str = "daily aggregate"):
        super().__init__(f"Transaction on {target} {key} aborted after {attempts} attempts")
        self.key = key
        self.attempts = attempts


class PurgeIncompleteError(CarwashError):
    """Some aggregate deletions failed; the others stay deleted"""

    def __init__(self, result: "PurgeResult"):
        super().__init__(
            f"Purge deleted {result.deleted} of {result.targeted} aggregates; "
            f"failed: {', '.join(result.failed_ids)}"
        )
        self.result = result


class WeatherServiceError(CarwashError):
    """Open-Meteo answered with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
