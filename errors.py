"""Exception types shared by the detection pipeline, worker and API."""


class BibflowError(Exception):
    """Base class for pipeline errors."""


class ValidationError(BibflowError, ValueError):
    """A bib number or option value is malformed."""


class ServiceError(BibflowError):
    """A remote service (detector, cloud OCR, object store) failed or rejected a call."""


class PersistenceError(BibflowError):
    """Writing to the relational store failed."""


class CancellationError(BibflowError):
    """Processing stopped because the photo was cancelled by its owner."""


class PhotoNotFoundError(BibflowError, LookupError):
    """No photo exists with the requested id."""


class InvalidTransitionError(BibflowError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, photo_id: str, current: str, target: str):
        self.photo_id = photo_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move photo {photo_id} from {current} to {target}"
        )
