"""Tests for EC2Manager."""

import stat
from dataclasses import replace
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    WaiterError,
)
from moto import mock_aws

from devrig.constants import OSFamily, RemoteState
from devrig.core.config import DevRigConfig
from devrig.core.exceptions import ProvisioningTimeoutError, StateFileError
from devrig.providers.aws.compute import EC2Manager
from devrig.providers.aws.network import security_group_name_for
from devrig.providers.exceptions import ProviderAPIError, ProviderCredentialsError

MISSING_INSTANCE_ID = "i-0123456789abcdef0"


def client_error(code: str, operation: str = "DescribeInstances") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def mock_manager(ec2_client: MagicMock, **kwargs) -> EC2Manager:
    return EC2Manager(
        region="us-east-1",
        boto3_client_factory=lambda service, region_name: ec2_client,
        **kwargs,
    )


@pytest.fixture(scope="function")
def ec2_manager(aws_credentials):
    """Return an EC2Manager backed by moto with zero waiter delay."""
    with mock_aws():
        yield EC2Manager(region="us-east-1", waiter_delay=0, waiter_max_attempts=2)


@pytest.fixture
def registered_ami(ec2_manager):
    """Register an AMI for testing.

    Yields
    ------
    str
        AMI ID of registered image
    """
    response = ec2_manager.ec2_client.register_image(
        Name="test-ami-image",
        Description="Test AMI",
        Architecture="x86_64",
        RootDeviceName="/dev/xvda",
        VirtualizationType="hvm",
    )
    yield response["ImageId"]


@pytest.fixture
def launch_config(registered_ami, fake_home, tmp_path) -> DevRigConfig:
    return DevRigConfig(
        image_id=registered_ami,
        enable_bedrock=False,
        state_file=str(tmp_path / ".instance-info"),
        waiter_delay=0,
        waiter_max_attempts=2,
    )


@pytest.fixture
def launched(ec2_manager, launch_config) -> str:
    return ec2_manager.launch_instance(launch_config, "#!/bin/bash\necho hi\n")


def describe(ec2_manager, instance_id):
    response = ec2_manager.ec2_client.describe_instances(InstanceIds=[instance_id])
    return response["Reservations"][0]["Instances"][0]


def test_launch_instance_tags_and_resources(
    ec2_manager, launch_config, launched, fake_home
) -> None:
    instance = describe(ec2_manager, launched)
    tags = {tag["Key"]: tag["Value"] for tag in instance["Tags"]}

    assert tags == {"Name": "dev-rig", "ManagedBy": "devrig"}
    assert instance["InstanceType"] == "t3.medium"
    assert instance["ImageId"] == launch_config.image_id
    assert instance["KeyName"] == "dev-rig-key"

    group_names = [sg["GroupName"] for sg in instance["SecurityGroups"]]
    assert group_names == [security_group_name_for("dev-rig-sg", private=False)]

    key_file = fake_home / ".ssh" / "dev-rig-key.pem"
    assert key_file.exists()
    assert stat.S_IMODE(key_file.stat().st_mode) == 0o400


def test_launch_instance_reuses_key_pair_and_group(ec2_manager, launch_config, launched) -> None:
    second = ec2_manager.launch_instance(launch_config, "#!/bin/bash\n")

    assert second != launched
    assert len(ec2_manager.ec2_client.describe_key_pairs()["KeyPairs"]) == 1

    first_groups = describe(ec2_manager, launched)["SecurityGroups"]
    second_groups = describe(ec2_manager, second)["SecurityGroups"]
    assert first_groups == second_groups


def test_launch_instance_with_bedrock_role(ec2_manager, launch_config) -> None:
    iam = boto3.client("iam", region_name="us-east-1")
    profile = iam.create_instance_profile(InstanceProfileName="dev-rig-bedrock-role")
    arn = profile["InstanceProfile"]["Arn"]

    iam_manager = MagicMock()
    iam_manager.ensure_instance_profile.return_value = arn
    iam_factory = MagicMock(return_value=iam_manager)
    ec2_manager.iam_manager_factory = iam_factory

    config = replace(launch_config, enable_bedrock=True, admin_profile="admin")
    instance_id = ec2_manager.launch_instance(config, "#!/bin/bash\n")

    iam_factory.assert_called_once_with(region="us-east-1", admin_profile="admin")
    iam_manager.ensure_instance_profile.assert_called_once_with("dev-rig-bedrock-role")
    assert describe(ec2_manager, instance_id)["IamInstanceProfile"]["Arn"] == arn


def test_launch_instance_rejects_unknown_type(ec2_manager, launch_config) -> None:
    config = replace(launch_config, instance_type="t3.mega")

    with pytest.raises(ValueError, match="Invalid instance type"):
        ec2_manager.launch_instance(config, "#!/bin/bash\n")

    assert ec2_manager.ec2_client.describe_instances()["Reservations"] == []
    assert ec2_manager.ec2_client.describe_key_pairs()["KeyPairs"] == []


def test_launch_instance_uses_family_root_device() -> None:
    ec2_client = MagicMock()
    ec2_client.run_instances.return_value = {"Instances": [{"InstanceId": "i-1"}]}
    manager = mock_manager(ec2_client)
    manager.ami_resolver = MagicMock()
    manager.keypair_manager = MagicMock()
    manager.network_manager = MagicMock()
    manager.network_manager.ensure_security_group.return_value = "sg-1"

    config = DevRigConfig(os_family=OSFamily.UBUNTU, disk_size=30, enable_bedrock=False)
    manager.launch_instance(config, "#!/bin/bash\n")

    kwargs = ec2_client.run_instances.call_args.kwargs
    assert kwargs["BlockDeviceMappings"] == [
        {
            "DeviceName": "/dev/sda1",
            "Ebs": {"VolumeSize": 30, "VolumeType": "gp3", "DeleteOnTermination": True},
        }
    ]
    assert kwargs["UserData"] == "#!/bin/bash\n"
    assert "IamInstanceProfile" not in kwargs


def test_describe_running_instance(ec2_manager, launched) -> None:
    status = ec2_manager.describe_instance(launched)

    assert status.state == RemoteState.RUNNING
    assert status.public_ip == describe(ec2_manager, launched).get("PublicIpAddress")


def test_describe_missing_instance_is_terminated(ec2_manager) -> None:
    status = ec2_manager.describe_instance(MISSING_INSTANCE_ID)

    assert status.state == RemoteState.TERMINATED
    assert status.public_ip is None


def test_describe_empty_reservations_is_terminated() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.return_value = {"Reservations": []}

    status = mock_manager(ec2_client).describe_instance(MISSING_INSTANCE_ID)

    assert status.state == RemoteState.TERMINATED


@pytest.mark.parametrize(
    "error",
    [
        client_error("RequestLimitExceeded"),
        client_error("InternalError"),
        EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com"),
    ],
)
def test_describe_failure_is_unknown(error) -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.side_effect = error

    status = mock_manager(ec2_client).describe_instance(MISSING_INSTANCE_ID)

    assert status.state == RemoteState.UNKNOWN


def test_describe_unrecognized_state_is_unknown() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.return_value = {
        "Reservations": [{"Instances": [{"State": {"Name": "hibernating"}}]}]
    }

    status = mock_manager(ec2_client).describe_instance(MISSING_INSTANCE_ID)

    assert status.state == RemoteState.UNKNOWN


def test_describe_without_credentials_raises() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.side_effect = NoCredentialsError()

    with pytest.raises(ProviderCredentialsError):
        mock_manager(ec2_client).describe_instance(MISSING_INSTANCE_ID)


@pytest.mark.parametrize(
    "code",
    ["AuthFailure", "ExpiredToken", "UnauthorizedOperation", "AccessDenied"],
)
def test_describe_rejected_credentials_raise(code) -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.side_effect = client_error(code)

    with pytest.raises(ProviderAPIError) as exc_info:
        mock_manager(ec2_client).describe_instance(MISSING_INSTANCE_ID)

    assert exc_info.value.error_code == code


def test_describe_malformed_id_raises_state_file_error() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.side_effect = client_error("InvalidInstanceID.Malformed")

    with pytest.raises(StateFileError, match="malformed"):
        mock_manager(ec2_client).describe_instance("i-typo")


def test_get_account_id(ec2_manager) -> None:
    assert ec2_manager.get_account_id() == "123456789012"


def test_get_account_id_without_credentials() -> None:
    sts_client = MagicMock()
    sts_client.get_caller_identity.side_effect = NoCredentialsError()

    with pytest.raises(ProviderCredentialsError):
        mock_manager(sts_client).get_account_id()


def test_stop_start_cycle(ec2_manager, launched) -> None:
    ec2_manager.stop_instance(launched)
    stopped = ec2_manager.wait_for_state(launched, RemoteState.STOPPED)

    assert stopped.state == RemoteState.STOPPED

    ec2_manager.start_instance(launched)
    running = ec2_manager.wait_for_state(launched, RemoteState.RUNNING)

    assert running.state == RemoteState.RUNNING


def test_terminate_returns_security_groups(ec2_manager, launched) -> None:
    expected = [sg["GroupId"] for sg in describe(ec2_manager, launched)["SecurityGroups"]]

    sg_ids = ec2_manager.terminate_instance(launched)
    status = ec2_manager.wait_for_state(launched, RemoteState.TERMINATED)

    assert sg_ids == expected
    assert status.state == RemoteState.TERMINATED


def test_terminate_missing_instance_is_tolerated(ec2_manager) -> None:
    assert ec2_manager.terminate_instance(MISSING_INSTANCE_ID) == []


def test_incorrect_instance_state_is_tolerated() -> None:
    ec2_client = MagicMock()
    ec2_client.start_instances.side_effect = client_error(
        "IncorrectInstanceState", "StartInstances"
    )

    mock_manager(ec2_client).start_instance(MISSING_INSTANCE_ID)


def test_other_state_change_errors_propagate() -> None:
    ec2_client = MagicMock()
    ec2_client.stop_instances.side_effect = client_error(
        "UnauthorizedOperation", "StopInstances"
    )

    with pytest.raises(ProviderAPIError) as exc_info:
        mock_manager(ec2_client).stop_instance(MISSING_INSTANCE_ID)

    assert exc_info.value.error_code == "UnauthorizedOperation"


def test_wait_for_state_uses_configured_waiter() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.return_value = {
        "Reservations": [
            {"Instances": [{"State": {"Name": "running"}, "PublicIpAddress": "198.51.100.9"}]}
        ]
    }
    manager = mock_manager(ec2_client, waiter_delay=5, waiter_max_attempts=3)

    status = manager.wait_for_state(MISSING_INSTANCE_ID, RemoteState.RUNNING)

    ec2_client.get_waiter.assert_called_once_with("instance_running")
    ec2_client.get_waiter.return_value.wait.assert_called_once_with(
        InstanceIds=[MISSING_INSTANCE_ID],
        WaiterConfig={"Delay": 5, "MaxAttempts": 3},
    )
    assert status.public_ip == "198.51.100.9"


def test_wait_for_state_timeout_override() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.return_value = {"Reservations": []}
    manager = mock_manager(ec2_client, waiter_delay=5, waiter_max_attempts=3)

    manager.wait_for_state(MISSING_INSTANCE_ID, RemoteState.STOPPED, timeout=60)

    ec2_client.get_waiter.return_value.wait.assert_called_once_with(
        InstanceIds=[MISSING_INSTANCE_ID],
        WaiterConfig={"Delay": 5, "MaxAttempts": 12},
    )


def test_wait_for_state_timeout_raises() -> None:
    ec2_client = MagicMock()
    ec2_client.get_waiter.return_value.wait.side_effect = WaiterError(
        name="InstanceRunning", reason="Max attempts exceeded", last_response={}
    )

    with pytest.raises(ProvisioningTimeoutError, match="did not reach 'running'"):
        mock_manager(ec2_client).wait_for_state(MISSING_INSTANCE_ID, RemoteState.RUNNING)


def test_wait_until_settled_polls_until_stable() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.side_effect = [
        {"Reservations": [{"Instances": [{"State": {"Name": "stopping"}}]}]},
        client_error("RequestLimitExceeded"),
        {"Reservations": [{"Instances": [{"State": {"Name": "stopped"}}]}]},
    ]
    sleeps = []
    manager = mock_manager(ec2_client, waiter_delay=7, sleep=sleeps.append)

    status = manager.wait_until_settled(MISSING_INSTANCE_ID, timeout=600)

    assert status.state == RemoteState.STOPPED
    assert sleeps == [7, 7]


def test_wait_until_settled_times_out() -> None:
    ec2_client = MagicMock()
    ec2_client.describe_instances.return_value = {
        "Reservations": [{"Instances": [{"State": {"Name": "pending"}}]}]
    }
    manager = mock_manager(ec2_client, sleep=lambda seconds: None)

    with pytest.raises(ProvisioningTimeoutError, match="still 'pending'"):
        manager.wait_until_settled(MISSING_INSTANCE_ID, timeout=0)
