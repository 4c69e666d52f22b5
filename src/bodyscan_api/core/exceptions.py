"""Custom exception classes for the API."""

from typing import Any


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int = 400, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with id '{resource_id}' not found",
            status_code=404,
            details={"resource": resource, "id": resource_id},
        )


class ScanStageError(APIError):
    """
    A body scan attempt failed at a specific stage.

    The original message is preserved in the rendered message and the
    original exception is expected to be chained as ``__cause__``.
    """

    def __init__(
        self,
        stage: str,
        client_scan_id: str,
        message: str,
        error_code: str = "STAGE_FAILED",
    ):
        self.stage = stage
        self.client_scan_id = client_scan_id
        self.error_code = error_code
        self.original_message = message
        super().__init__(
            message=f"{stage} stage failed: {message}",
            status_code=502,
            details={
                "stage": stage,
                "client_scan_id": client_scan_id,
                "error_code": error_code,
            },
        )
