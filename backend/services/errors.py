"""
Domain errors raised by the data client and analytics services.

The HTTP layer maps each one to a status code and an ErrorResponse.
"""


class LabQualityError(Exception):
    """Base class for all lab quality errors."""

    status_code = 500
    error_code = "LAB_QUALITY_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class RecordNotFoundError(LabQualityError):
    """A record id did not match anything in a collection."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, collection: str, record_id: str):
        super().__init__(
            f"{collection} record '{record_id}' not found",
            details={"collection": collection, "id": record_id},
        )


class InvalidDateRangeError(LabQualityError):
    """An analytics date range could not be resolved."""

    status_code = 400
    error_code = "INVALID_DATE_RANGE"


class DataSourceError(LabQualityError):
    """The backing data source could not be loaded."""

    status_code = 503
    error_code = "DATA_SOURCE_UNAVAILABLE"
