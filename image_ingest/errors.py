"""Failure taxonomy for the upload pipeline.

Every error carries the HTTP status it maps to, the pipeline stage it was
raised in and a small context dict (product id, hash prefix, slot) that is
logged but never sent to the client.
"""


class PipelineError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message, stage=None, context=None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.context = context or {}

    def to_dict(self):
        return {"success": False, "message": self.message}


class ValidationError(PipelineError):
    status_code = 400


class InvalidFile(ValidationError):
    """Declared type or size is not acceptable."""


class NoFileProvided(ValidationError):
    def __init__(self, message="No image file provided", **kwargs):
        super().__init__(message, **kwargs)


class CorruptImage(PipelineError):
    """Declared type was fine but the bytes do not decode as an image."""

    status_code = 400


class NotFound(PipelineError):
    status_code = 404


class StorageWriteFailure(PipelineError):
    retryable = True


class DatabaseFailure(PipelineError):
    retryable = True


class LockTimeout(PipelineError):
    status_code = 503
    retryable = True


class PrimaryConflict(PipelineError):
    """More than one primary found for a product. Resolved internally."""
