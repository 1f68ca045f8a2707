class SantaError(Exception):
    """Base class for everything the exchange reports back to a caller."""


class PermissionDenied(SantaError):
    pass


class InsufficientParticipants(SantaError):
    def __init__(self, count: int):
        super().__init__(f"Need >=2 participants, have {count}")
        self.count = count


class NotEligible(SantaError):
    pass


class ExchangeInProgress(SantaError):
    pass


class StoreError(SantaError):
    """Persistence failed; the write did not take effect."""


class ParticipantNotFound(StoreError, LookupError):
    def __init__(self, participant_id: str):
        super().__init__(f"Unknown participant {participant_id!r}")
        self.participant_id = participant_id
