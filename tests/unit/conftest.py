"""Pytest configuration and fixtures for devrig tests."""

import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

unit_root = Path(__file__).parent
if str(unit_root) not in sys.path:
    sys.path.insert(0, str(unit_root))

from fakes.fake_ec2_manager import FakeEC2Manager  # noqa: E402
from fakes.fake_mesh_client import FakeMeshClient  # noqa: E402

from devrig.core.config import DevRigConfig  # noqa: E402
from devrig.core.state import InstanceRecord, LocalStateStore  # noqa: E402

CONFIG_ENV_VARS = (
    "DEVRIG_CONFIG",
    "DEVRIG_DEBUG",
    "INSTANCE_NAME",
    "INSTANCE_TYPE",
    "VOLUME_SIZE",
    "AWS_REGION",
    "KEY_NAME",
    "SECURITY_GROUP_NAME",
    "IAM_ROLE_NAME",
    "ENABLE_BEDROCK",
    "OS",
    "PRIVATE_MODE",
    "TAILSCALE_AUTHKEY",
    "AWS_ADMIN_PROFILE",
    "DEVRIG_IMAGE_ID",
    "DEVRIG_STATE_FILE",
)


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove configuration overrides inherited from the developer's shell."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aws_credentials() -> Generator[None, None, None]:
    """Fixture to set AWS credentials for testing with proper cleanup.

    Sets mock AWS credentials in environment variables for the duration of the test,
    then restores the original environment state.

    Yields
    ------
    None
        Control back to test after setting credentials
    """
    old_values = {
        name: os.environ.get(name)
        for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")
    }

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    for name, value in old_values.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)


@pytest.fixture
def fake_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the home directory at a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Return a temporary config file path exported as DEVRIG_CONFIG."""
    config_path = tmp_path / "devrig.yaml"
    monkeypatch.setenv("DEVRIG_CONFIG", str(config_path))
    return config_path


@pytest.fixture
def write_config(config_file: Path) -> Callable[[dict[str, Any]], Path]:
    """Return a helper writing a dict as YAML to the config file."""

    def _write(data: dict[str, Any]) -> Path:
        config_file.write_text(yaml.safe_dump(data))
        return config_file

    return _write


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / ".instance-info"


@pytest.fixture
def store(state_path: Path) -> LocalStateStore:
    return LocalStateStore(state_path)


@pytest.fixture
def devrig_config(state_path: Path) -> DevRigConfig:
    """Configuration with zero waits and a temporary state file."""
    return DevRigConfig(
        state_file=str(state_path),
        ssh_ready_delay=0,
        waiter_delay=0,
        waiter_max_attempts=1,
    )


@pytest.fixture
def calls() -> list[tuple[Any, ...]]:
    return []


@pytest.fixture
def fake_compute(calls: list[tuple[Any, ...]]) -> FakeEC2Manager:
    return FakeEC2Manager(calls=calls)


@pytest.fixture
def fake_mesh(calls: list[tuple[Any, ...]]) -> FakeMeshClient:
    return FakeMeshClient(calls=calls)


@pytest.fixture
def make_record() -> Callable[..., InstanceRecord]:
    """Return a factory for instance records."""

    def _make(
        instance_id: str = "i-0123456789abcdef0",
        public_ip: str = "198.51.100.7",
    ) -> InstanceRecord:
        return InstanceRecord(
            instance_id=instance_id,
            public_ip=public_ip,
            key_file="/home/dev/.ssh/dev-rig-key.pem",
            region="us-east-1",
            ssh_user="ec2-user",
        )

    return _make
