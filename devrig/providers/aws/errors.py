"""Translation of botocore exceptions into provider exceptions."""

from collections.abc import Iterator
from contextlib import contextmanager

from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from devrig.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)


def get_error_code(error: ClientError) -> str:
    """Return the AWS error code carried by a ClientError."""
    return error.response.get("Error", {}).get("Code", "")


@contextmanager
def handle_aws_errors() -> Iterator[None]:
    """Convert botocore exceptions raised inside the block.

    Raises
    ------
    ProviderCredentialsError
        If credentials are missing, partial, or reference an unknown profile
    ProviderConnectionError
        If the endpoint cannot be reached
    ProviderAPIError
        For any other ClientError, carrying the AWS error code
    """
    try:
        yield
    except (NoCredentialsError, PartialCredentialsError, ProfileNotFound) as e:
        raise ProviderCredentialsError(str(e)) from e
    except EndpointConnectionError as e:
        raise ProviderConnectionError(str(e)) from e
    except ClientError as e:
        raise ProviderAPIError(str(e), error_code=get_error_code(e)) from e
