class QuizBankError(Exception):
    """Base class for errors surfaced to the user of the question bank."""


class IngestionError(QuizBankError):
    """The uploaded file could not be turned into a question bank.

    Raised for undecodable bytes, malformed records and files without any
    usable rows. The existing bank is never touched when this is raised.
    """


class ValidationGuardError(QuizBankError):
    """A transition was blocked before any state was mutated."""


class InvalidTransitionError(ValidationGuardError):
    """The requested operation is not valid in the current session phase."""


class PersistenceError(QuizBankError):
    """A key-value backend failed to serialize or store a value."""
