"""
Errors raised by timetable edits.

Every check that can reject an edit runs before the store is touched, so an
EditError always means nothing was written. Storage failures during the
write itself propagate unchanged as db.errors.StorageError subclasses.
"""


class EditError(Exception):
    """Base class for rejected timetable edits."""


class NotFoundError(EditError, LookupError):
    """A referenced trip, stop or stop time does not exist."""


class EditValidationError(EditError, ValueError):
    """The requested edit is malformed or would break a schedule invariant."""


class InvalidFieldError(EditValidationError):
    """The time field name is not one of arrival, departure or both."""


class InvalidTimeFormatError(EditValidationError):
    """A time value is not a GTFS H:MM:SS / HH:MM:SS string."""


class TimeOrderError(EditValidationError):
    """The edit would leave arrival_time later than departure_time."""


class AmbiguousStopError(EditValidationError):
    """The trip visits the stop more than once and no stop_sequence was given."""
