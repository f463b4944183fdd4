"""CLI entry point for devrig."""

from __future__ import annotations

import os
import re
import sys
from typing import Any

import fire

from devrig.constants import EXIT_CONFIG_ERROR, EXIT_ERROR
from devrig.core.exceptions import (
    BootstrapError,
    DevRigError,
    NoAddressError,
    ProvisioningTimeoutError,
    RemoteQueryError,
    StateFileError,
    TransitionInProgressError,
)
from devrig.logging import configure_logging
from devrig.providers import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)
from devrig.providers.aws.utils import get_aws_credentials_error_message


def get_devrig_class() -> type:
    """Get DevRig class on-demand to avoid circular imports.

    Returns
    -------
    type
        DevRig class
    """
    from devrig.__main__ import DevRig

    return DevRig


def handle_credentials_error(debug_mode: bool) -> None:
    """Handle provider credentials error.

    Parameters
    ----------
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderCredentialsError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(get_aws_credentials_error_message(), file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_value_error(error: ValueError, debug_mode: bool) -> None:
    """Handle value error with context-specific messages.

    Parameters
    ----------
    error : ValueError
        The value error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    error_msg = str(error)

    if "No default VPC" in error_msg:
        match = re.search(r"in\s+region\s+'?([^'\s]+)", error_msg)
        region = match.group(1) if match else "us-east-1"

        print(f"No default VPC in {region}\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print(f"  aws ec2 create-default-vpc --region {region}\n", file=sys.stderr)
        print("Or use a different region:", file=sys.stderr)
        print("  AWS_REGION=us-west-2 devrig provision", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    elif "No AMI found" in error_msg:
        print(f"{error_msg}\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  Set image_id in devrig.yaml (or DEVRIG_IMAGE_ID)", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    else:
        print(f"Configuration error: {error_msg}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)


def handle_api_error(error: ProviderAPIError, debug_mode: bool) -> None:
    """Handle provider API error with context-specific messages.

    Parameters
    ----------
    error : ProviderAPIError
        The API error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderAPIError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    error_code = error.error_code
    error_msg = str(error)

    if error_code in ["UnauthorizedOperation", "AccessDenied"]:
        print("Insufficient IAM permissions\n", file=sys.stderr)
        print(
            "Your AWS credentials don't have the required permissions.",
            file=sys.stderr,
        )
        print("Contact your AWS administrator to grant:", file=sys.stderr)
        print(
            "  - EC2 permissions (DescribeInstances, RunInstances, StartInstances, "
            "StopInstances, TerminateInstances)",
            file=sys.stderr,
        )
        print(
            "  - Key Pair permissions (CreateKeyPair, DescribeKeyPairs)",
            file=sys.stderr,
        )
        print("  - Security Group permissions", file=sys.stderr)
    elif error_code in ["AuthFailure", "InvalidClientTokenId", "SignatureDoesNotMatch"]:
        print("AWS rejected your credentials\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  aws sts get-caller-identity   # Check which identity is used", file=sys.stderr)
        print("  aws configure                 # Re-configure credentials", file=sys.stderr)
    elif error_code in ["InstanceLimitExceeded", "RequestLimitExceeded"]:
        print("AWS quota exceeded\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  https://console.aws.amazon.com/servicequotas/", file=sys.stderr)
    elif error_code in ["ExpiredToken", "RequestExpired", "ExpiredTokenException"]:
        print("AWS credentials have expired\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  aws sso login           # If using AWS SSO", file=sys.stderr)
        print("  aws configure           # Re-configure credentials", file=sys.stderr)
    else:
        print(f"AWS API error: {error_msg}", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def handle_connection_error(error: ProviderConnectionError, debug_mode: bool) -> None:
    """Handle failure to reach the AWS endpoint."""
    if debug_mode:
        raise

    print(f"Cannot reach AWS: {error}\n", file=sys.stderr)
    print("Check your network connection and AWS_REGION, then try again.", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_devrig_error(error: DevRigError, debug_mode: bool) -> None:
    """Handle lifecycle errors with a short diagnosis.

    Parameters
    ----------
    error : DevRigError
        The error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    DevRigError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Error: {error}\n", file=sys.stderr)

    if isinstance(error, StateFileError):
        print("Fix it:", file=sys.stderr)
        print("  Correct the instance record by hand, or delete it", file=sys.stderr)
        print("  if the instance no longer exists.", file=sys.stderr)
    elif isinstance(error, ProvisioningTimeoutError):
        print("The instance record was saved.", file=sys.stderr)
        print("Run 'devrig provision' again to resume waiting.", file=sys.stderr)
    elif isinstance(error, RemoteQueryError):
        print("Nothing was changed. Try again in a moment.", file=sys.stderr)
    elif isinstance(error, TransitionInProgressError):
        print("Check progress with: devrig status", file=sys.stderr)
    elif isinstance(error, BootstrapError):
        print("No AWS resources were created.", file=sys.stderr)
    elif isinstance(error, NoAddressError):
        print("Fix it:", file=sys.stderr)
        print("  Check the instance with: devrig status", file=sys.stderr)
        print("  Or connect it to your tailnet and retry.", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def handle_runtime_error(error: RuntimeError, debug_mode: bool) -> None:
    """Handle unexpected runtime error.

    Parameters
    ----------
    error : RuntimeError
        The runtime error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    RuntimeError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def main(component: Any = None) -> None:
    """Entry point for Fire CLI with graceful error handling.

    Parameters
    ----------
    component : Any
        Object exposed through Fire (default: a new DevRig instance)
    """
    configure_logging()

    debug_mode = os.environ.get("DEVRIG_DEBUG") == "1"

    try:
        fire.Fire(component if component is not None else get_devrig_class()())
    except ProviderCredentialsError:
        handle_credentials_error(debug_mode)
    except ValueError as e:
        handle_value_error(e, debug_mode)
    except ProviderAPIError as e:
        handle_api_error(e, debug_mode)
    except ProviderConnectionError as e:
        handle_connection_error(e, debug_mode)
    except DevRigError as e:
        handle_devrig_error(e, debug_mode)
    except RuntimeError as e:
        handle_runtime_error(e, debug_mode)
