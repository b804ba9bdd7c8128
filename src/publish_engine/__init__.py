from .destinations import DestinationConfig, DestinationId, all_destinations, get_destination
from .errors import ErrorCode, PublishError, hint_for
from .models import OutcomeStatus, PublishOutcome, PublishRequest, Session
from .publisher import Publisher

__version__ = "0.3.0"

__all__ = [
    "DestinationConfig",
    "DestinationId",
    "ErrorCode",
    "OutcomeStatus",
    "PublishError",
    "PublishOutcome",
    "PublishRequest",
    "Publisher",
    "Session",
    "all_destinations",
    "get_destination",
    "hint_for",
]
