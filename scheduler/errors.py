class SchedulingInputError(Exception):
    """Raised when run input is unusable before any search work can start."""

    pass


class EmptyRosterError(SchedulingInputError):
    """Raised when the client list or the therapist list is empty."""

    pass


class InvalidDateError(SchedulingInputError):
    """Raised when the selected date cannot be resolved to a day of week."""

    pass
