"""Error taxonomy shared by every layer."""


class LingoLiftError(Exception):
    """Base class for all lingolift failures."""


class SyncTransportError(LingoLiftError):
    """
    The sync round-trip failed.

    Carries the HTTP status for non-2xx responses, or the underlying cause
    for network and decoding failures.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


TransportError = SyncTransportError


class MergeInconsistency(LingoLiftError):
    """A single record could not be reconciled; the merge skips it and continues."""

    def __init__(self, card_id: str, reason: str):
        super().__init__(f"card {card_id!r}: {reason}")
        self.card_id = card_id
        self.reason = reason


class StoreWriteError(LingoLiftError):
    """The local store failed to persist a write."""


class SyncInProgressError(LingoLiftError):
    """A sync is already running on this orchestrator."""


class LessonNotFoundError(LingoLiftError):
    def __init__(self, lesson_id: str):
        super().__init__(f"Lesson not found: {lesson_id}")
        self.lesson_id = lesson_id


class CardNotFoundError(LingoLiftError):
    def __init__(self, card_id: str):
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id
