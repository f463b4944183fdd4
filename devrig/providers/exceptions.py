"""Provider-agnostic exceptions raised by the cloud provider layer."""


class ProviderError(Exception):
    """Base class for cloud provider errors."""


class ProviderCredentialsError(ProviderError):
    """Raised when cloud credentials are missing or unusable."""


class ProviderConnectionError(ProviderError):
    """Raised when the cloud API endpoint cannot be reached."""


class ProviderAPIError(ProviderError):
    """Raised when the cloud API rejects a request.

    Parameters
    ----------
    message : str
        Human readable error message
    error_code : str | None
        Provider error code (e.g., 'UnauthorizedOperation')
    """

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
