"""
Custom exceptions for WB Finance Report.

The aggregation core never raises for bad upstream data; these classes cover
the edges: request validation, upstream API failures and report output.
"""

from typing import Optional, Dict, Any


class FinanceReportError(Exception):
    """Base exception for all WB Finance Report errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception with message and optional details.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(FinanceReportError):
    """Raised when configuration is invalid or missing."""
    pass


class AuthenticationError(FinanceReportError):
    """Raised when the API token is rejected."""
    pass


class APIError(FinanceReportError):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_data: Optional[Any] = None):
        """
        Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: API response data
        """
        details = {}
        if status_code:
            details["status_code"] = status_code
        if response_data:
            details["response_data"] = response_data

        super().__init__(message, details)
        self.status_code = status_code
        self.response_data = response_data


class WildberriesAPIError(APIError):
    """Raised when Wildberries API calls fail."""

    def __init__(self, message: str, endpoint: Optional[str] = None,
                 status_code: Optional[int] = None,
                 response_data: Optional[Any] = None):
        super().__init__(message, status_code, response_data)
        self.endpoint = endpoint

        if endpoint:
            self.details["endpoint"] = endpoint


class RateLimitError(APIError):
    """Raised when API rate limits are exceeded (HTTP 429)."""

    def __init__(self, message: str, retry_after: Optional[float] = None,
                 endpoint: Optional[str] = None):
        """
        Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            endpoint: API endpoint that was rate limited
        """
        details = {}
        if retry_after:
            details["retry_after"] = retry_after
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(message, 429, details)
        self.retry_after = retry_after
        self.endpoint = endpoint


class TaskTimeoutError(FinanceReportError):
    """Raised when an async report task (storage, acceptance) is not ready in time."""

    def __init__(self, message: str, task_id: Optional[str] = None,
                 timeout_seconds: Optional[float] = None):
        details = {}
        if task_id:
            details["task_id"] = task_id
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds

        super().__init__(message, details)
        self.task_id = task_id
        self.timeout_seconds = timeout_seconds


class ValidationError(FinanceReportError):
    """Raised when request data validation fails."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Optional[Any] = None, expected_type: Optional[str] = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            value: Invalid value
            expected_type: Expected data type
        """
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(message, details)
        self.field = field
        self.value = value
        self.expected_type = expected_type


class DataFormatError(FinanceReportError):
    """Raised when an input file or payload has an unexpected shape."""

    def __init__(self, message: str, expected_format: Optional[str] = None,
                 actual_format: Optional[str] = None, data_sample: Optional[str] = None):
        details = {}
        if expected_format:
            details["expected_format"] = expected_format
        if actual_format:
            details["actual_format"] = actual_format
        if data_sample:
            details["data_sample"] = data_sample

        super().__init__(message, details)
        self.expected_format = expected_format
        self.actual_format = actual_format
        self.data_sample = data_sample


class ReportWriteError(FinanceReportError):
    """Raised when the report cannot be written to Google Sheets."""

    def __init__(self, message: str, sheet_id: Optional[str] = None,
                 worksheet: Optional[str] = None):
        details = {}
        if sheet_id:
            details["sheet_id"] = sheet_id
        if worksheet:
            details["worksheet"] = worksheet

        super().__init__(message, details)
        self.sheet_id = sheet_id
        self.worksheet = worksheet


def handle_api_error(response, endpoint: Optional[str] = None) -> None:
    """
    Translate a failed HTTP response into the matching API error.

    Args:
        response: HTTP response object
        endpoint: API endpoint that was called

    Raises:
        AuthenticationError, RateLimitError or WildberriesAPIError.
    """
    status_code = getattr(response, 'status_code', None)

    try:
        response_data = response.json()
    except ValueError:
        response_data = getattr(response, 'text', None)

    if status_code in (401, 403):
        message = ("API authentication failed - check your API key" if status_code == 401
                   else "API access forbidden - check token scopes")
        raise AuthenticationError(message, {"status_code": status_code, "endpoint": endpoint})

    if status_code == 429:
        retry_after = response.headers.get('Retry-After') if response.headers else None
        try:
            retry_after_value = float(retry_after) if retry_after else None
        except ValueError:
            retry_after_value = None
        raise RateLimitError(
            "API rate limit exceeded",
            retry_after=retry_after_value,
            endpoint=endpoint
        )

    if status_code is not None and status_code >= 500:
        raise WildberriesAPIError(
            f"Server error: {status_code}",
            endpoint=endpoint,
            status_code=status_code,
            response_data=response_data
        )

    raise WildberriesAPIError(
        f"API request failed: {status_code}",
        endpoint=endpoint,
        status_code=status_code,
        response_data=response_data
    )
