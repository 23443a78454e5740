"""Exception taxonomy for event reconciliation and data access."""


class PaySyncError(Exception):
    """Base class for all reconciliation errors."""


class DataAccessError(PaySyncError):
    """A statement or transaction failed after the retry policy gave up.

    ``retried`` is True when at least one retry was attempted before the
    failure surfaced.
    """

    def __init__(self, cause: BaseException, retried: bool = False) -> None:
        self.cause = cause
        self.retried = retried
        super().__init__(f"Database operation failed: {cause}")


class ForeignKeyRaceError(PaySyncError):
    """A child row kept violating its foreign key after every retry."""

    def __init__(self, entity_id: str, retries: int, cause: BaseException) -> None:
        self.entity_id = entity_id
        self.retries = retries
        self.cause = cause
        super().__init__(f"Price insert/update failed after {retries} retries: {cause}")


class MissingCustomerMappingError(PaySyncError):
    """No local user is mapped to the provider customer."""

    def __init__(self, customer_id: str) -> None:
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class MalformedPayloadError(PaySyncError):
    """A provider payload could not be cast to the local typed columns."""


class UnsupportedEventError(PaySyncError):
    """The event kind is well-formed but not handled."""

    def __init__(self, event_type: str) -> None:
        self.event_type = event_type
        super().__init__(f"Unsupported event type: {event_type}")


class WebhookVerificationError(PaySyncError):
    """The webhook secret or signature header is missing."""
