# medscan/errors.py


class MedScanError(Exception):
    """Base class for errors the API turns into an HTTP response."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ReportGenerationError(MedScanError):
    status_code = 502


class ProfileError(MedScanError):
    status_code = 400
