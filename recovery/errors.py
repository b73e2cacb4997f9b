"""Exceptions raised by the recovery scheduling and form core."""


class RecoveryError(Exception):
    """Base exception for all recovery core errors."""
    pass


class ValidationError(RecoveryError):
    """
    A response failed validation.

    Recoverable: re-prompt the same step with the message. The progress
    tracker reports invalid answers as data (ProgressUpdate.error); callers
    that prefer exceptions can raise this with that message.
    """

    def __init__(self, message: str, step_id: str = None):
        super().__init__(message)
        self.message = message
        self.step_id = step_id


class UnknownStepError(RecoveryError):
    """
    A step or question id is not part of the compiled flow.

    Usually stale client state after a form was recompiled. Callers should
    refetch the form and resume from the recorded current_step_id.
    """

    def __init__(self, step_id: str, form_id: str = None):
        where = f" in form {form_id}" if form_id else ""
        super().__init__(f"Unknown step '{step_id}'{where}")
        self.step_id = step_id
        self.form_id = form_id


class ConflictError(RecoveryError):
    """
    Concurrent write detected while saving progress.

    Callers must reload the freshest progress and retry, never overwrite.
    """

    def __init__(self, patient_id: str, form_instance_id: str,
                 expected_version: int, actual_version: int):
        super().__init__(
            f"Progress for patient {patient_id}, form instance {form_instance_id} "
            f"was modified concurrently (expected version {expected_version}, "
            f"found {actual_version})"
        )
        self.patient_id = patient_id
        self.form_instance_id = form_instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class OutOfRangeDayError(RecoveryError):
    """A day outside [timeline_start, timeline_end] was passed to a timeline query."""

    def __init__(self, day: int, timeline_start: int, timeline_end: int):
        super().__init__(
            f"Day {day} is outside the protocol timeline "
            f"[{timeline_start}, {timeline_end}]"
        )
        self.day = day
        self.timeline_start = timeline_start
        self.timeline_end = timeline_end


class NotFoundError(RecoveryError):
    """A protocol or form definition is not in the store."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind.capitalize()} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class InvalidIdentifierError(RecoveryError, ValueError):
    """
    An id cannot be used as a storage key.

    File-backed stores turn ids into single path components, so an id must
    be a non-empty string without path separators and not "." or "..".
    """

    def __init__(self, kind: str, identifier):
        super().__init__(f"Invalid {kind}: {identifier!r}")
        self.kind = kind
        self.identifier = identifier
