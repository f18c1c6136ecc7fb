"""Domain errors.

Validation and not-found failures are raised before anything is written so a
request never leaves partial state behind. Route handlers translate them to
HTTP responses in one place (see `estimator.main`).
"""

from __future__ import annotations


class EstimatorError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EntityValidationError(EstimatorError):
    """A required field is missing or a value is out of range."""

    status_code = 400


class NotFoundError(EstimatorError):
    status_code = 404

    @classmethod
    def for_entity(cls, entity: str, entity_id: object) -> NotFoundError:
        return cls(f"{entity} not found: {entity_id}")


class DuplicateNameError(EstimatorError):
    status_code = 409


class ReferenceConflictError(EstimatorError):
    """Deleting the entity would leave other records pointing at nothing."""

    status_code = 409


class BackupError(EstimatorError):
    """Filesystem failure while creating, listing or restoring backups."""

    status_code = 500
