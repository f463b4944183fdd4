"""Tests for botocore exception translation."""

import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
)

from devrig.providers.aws.errors import get_error_code, handle_aws_errors
from devrig.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)


def test_client_error_keeps_code() -> None:
    error = ClientError(
        {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}},
        "RunInstances",
    )

    with pytest.raises(ProviderAPIError) as exc_info:
        with handle_aws_errors():
            raise error

    assert exc_info.value.error_code == "UnauthorizedOperation"
    assert exc_info.value.__cause__ is error


@pytest.mark.parametrize(
    "error",
    [NoCredentialsError(), ProfileNotFound(profile="missing")],
)
def test_credential_errors(error) -> None:
    with pytest.raises(ProviderCredentialsError):
        with handle_aws_errors():
            raise error


def test_endpoint_errors() -> None:
    with pytest.raises(ProviderConnectionError):
        with handle_aws_errors():
            raise EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com")


def test_other_exceptions_pass_through() -> None:
    with pytest.raises(KeyError):
        with handle_aws_errors():
            raise KeyError("Images")


def test_missing_error_code() -> None:
    assert get_error_code(ClientError({}, "DescribeInstances")) == ""
