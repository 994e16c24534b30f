"""
Custom error classes for Sales Pulse Hub.
Structured error handling with error codes across all modules.

Hierarchy:
    HubError
    ├── APIError
    │   ├── HubSpotAPIError
    │   ├── GrainAPIError
    │   └── APITimeoutError
    └── DataError
        ├── ConfigError
        ├── SchemaValidationError
        ├── NotFoundError
        └── DataFetchError
"""


class HubError(Exception):
    """Base exception for all Sales Pulse Hub errors."""

    status_code_hint = 500

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(HubError):
    """Base class for external API errors."""

    status_code_hint = 502

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class HubSpotAPIError(APIError):
    """Non-success response from the HubSpot API."""

    def __init__(self, status_code: int, body: str, url: str = None):
        self.body = body
        super().__init__(
            f"HubSpot API error: {status_code} - {body}",
            code="HUBSPOT_API_ERROR", status_code=status_code, url=url,
            body=body,
        )


class GrainAPIError(APIError):
    """Non-success response from the Grain API."""

    def __init__(self, status_code: int, body: str, url: str = None):
        self.body = body
        super().__init__(
            f"Grain API error: {status_code} - {body}",
            code="GRAIN_API_ERROR", status_code=status_code, url=url,
            body=body,
        )


class APITimeoutError(APIError):
    """Request (or whole aggregation) exceeded its deadline."""

    status_code_hint = 504

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


# --- Data Errors ---

class DataError(HubError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Required configuration (usually a credential) is missing."""

    status_code_hint = 401

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"setting": setting},
        )


class SchemaValidationError(DataError):
    """Request input doesn't match the expected shape."""

    status_code_hint = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(
            message, code="SCHEMA_INVALID", details={"field": field},
        )


class NotFoundError(DataError):
    """A referenced record does not exist."""

    status_code_hint = 404

    def __init__(self, message: str, resource: str = None):
        super().__init__(
            message, code="NOT_FOUND", details={"resource": resource},
        )


class DataFetchError(DataError):
    """Failed to fetch or store data in the configuration store."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )
