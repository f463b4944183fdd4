"""Configuration loading for devrig.

Settings are merged once at startup, lowest precedence first: built-in
defaults, ``devrig.yaml``, a ``.env`` file next to it, and the process
environment. The merged dictionary is validated and frozen into a
``DevRigConfig`` that is passed explicitly to every component.
"""

import copy
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from devrig.constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_REGION,
    DEFAULT_STATE_FILE,
    SSH_READY_DELAY_SECONDS,
    WAITER_DELAY_SECONDS,
    WAITER_MAX_ATTEMPTS,
    OSFamily,
    PrivateMode,
)

logger = logging.getLogger(__name__)

ENVIRONMENT_KEYS = {
    "INSTANCE_NAME": "instance_name",
    "INSTANCE_TYPE": "instance_type",
    "VOLUME_SIZE": "disk_size",
    "AWS_REGION": "region",
    "KEY_NAME": "key_name",
    "SECURITY_GROUP_NAME": "security_group_name",
    "IAM_ROLE_NAME": "iam_role_name",
    "ENABLE_BEDROCK": "enable_bedrock",
    "OS": "os",
    "PRIVATE_MODE": "private_mode",
    "TAILSCALE_AUTHKEY": "tailscale_authkey",
    "AWS_ADMIN_PROFILE": "admin_profile",
    "DEVRIG_IMAGE_ID": "image_id",
    "DEVRIG_STATE_FILE": "state_file",
}
"""Environment variable names and the configuration keys they override."""

SSH_USERS = {
    OSFamily.AL2023: "ec2-user",
    OSFamily.UBUNTU: "ubuntu",
}


@dataclass(frozen=True)
class DevRigConfig:
    """Validated, immutable configuration for one invocation.

    Attributes
    ----------
    instance_name : str
        Value of the instance Name tag
    instance_type : str
        EC2 instance type
    disk_size : int
        Root volume size in GB
    region : str
        AWS region
    key_name : str
        EC2 key pair name; the private key is kept in ~/.ssh/<key_name>.pem
    security_group_name : str
        Base name of the security group
    iam_role_name : str
        IAM role and instance profile name
    enable_bedrock : bool
        Attach the IAM role granting Bedrock access
    os_family : OSFamily
        Machine image family
    private_mode : PrivateMode
        Reachability mode selector
    tailscale_authkey : str | None
        Auth key used to join the tailnet on first boot
    admin_profile : str | None
        AWS profile used for IAM operations when the default lacks permission
    image_id : str | None
        Explicit AMI ID, bypassing the image lookup
    ssh_allowed_cidr : str | None
        CIDR allowed to reach port 22 in public mode
    state_file : str
        Path of the local instance record
    ssh_ready_delay : float
        Seconds to wait after a restart before handing off to ssh
    waiter_delay : int
        Seconds between state polls
    waiter_max_attempts : int
        Number of state polls before a timeout
    """

    instance_name: str = "dev-rig"
    instance_type: str = "t3.medium"
    disk_size: int = 20
    region: str = DEFAULT_REGION
    key_name: str = "dev-rig-key"
    security_group_name: str = "dev-rig-sg"
    iam_role_name: str = "dev-rig-bedrock-role"
    enable_bedrock: bool = True
    os_family: OSFamily = OSFamily.AL2023
    private_mode: PrivateMode = PrivateMode.AUTO
    tailscale_authkey: str | None = None
    admin_profile: str | None = None
    image_id: str | None = None
    ssh_allowed_cidr: str | None = None
    state_file: str = DEFAULT_STATE_FILE
    ssh_ready_delay: float = SSH_READY_DELAY_SECONDS
    waiter_delay: int = WAITER_DELAY_SECONDS
    waiter_max_attempts: int = WAITER_MAX_ATTEMPTS

    @property
    def is_private(self) -> bool:
        """Whether port 22 stays closed and SSH goes through Tailscale only."""
        if self.private_mode == PrivateMode.TRUE:
            return True
        if self.private_mode == PrivateMode.AUTO:
            return bool(self.tailscale_authkey)
        return False

    @property
    def ssh_user(self) -> str:
        """Login account of the selected image family."""
        return SSH_USERS[self.os_family]

    @property
    def key_file(self) -> Path:
        """Location of the SSH private key."""
        return Path.home() / ".ssh" / f"{self.key_name}.pem"

    @property
    def wait_timeout(self) -> int:
        """Upper bound in seconds for any blocking wait."""
        return self.waiter_delay * self.waiter_max_attempts


FILE_KEYS = {"os_family": "os"}
"""Configuration keys whose name differs from the DevRigConfig field."""


def built_in_defaults() -> dict[str, Any]:
    """Return the DevRigConfig field defaults keyed by configuration key."""
    defaults: dict[str, Any] = {}
    for config_field in fields(DevRigConfig):
        value = config_field.default
        if isinstance(value, Enum):
            value = value.value
        defaults[FILE_KEYS.get(config_field.name, config_field.name)] = value
    return defaults


def _parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", ""):
        return False
    raise ValueError(f"{field} must be a boolean, got {value!r}")


def _parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"\s*\d+\s*", value):
        return int(value)
    raise ValueError(f"{field} must be an integer, got {value!r}")


class ConfigLoader:
    """Load and merge configuration sources into a DevRigConfig."""

    def __init__(self) -> None:
        """Initialize ConfigLoader with built-in defaults."""
        self.BUILT_IN_DEFAULTS: dict[str, Any] = built_in_defaults()

    def resolve_config_path(self, config_path: str | None = None) -> Path:
        """Return the configuration file path.

        Parameters
        ----------
        config_path : str | None
            Explicit path. If None, checks DEVRIG_CONFIG, then falls back to
            devrig.yaml in the working directory
        """
        if config_path is None:
            config_path = os.environ.get("DEVRIG_CONFIG", DEFAULT_CONFIG_FILE)
        return Path(config_path)

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file, see resolve_config_path

        Returns
        -------
        dict[str, Any]
            Parsed settings with interpolations resolved, or an empty dict
            when the file does not exist

        Raises
        ------
        ValueError
            If the YAML is invalid, is not a mapping, or interpolation fails
        RuntimeError
            If the file cannot be read
        """
        config_file = self.resolve_config_path(config_path)

        if not config_file.exists():
            return {}

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return {}

        if not OmegaConf.is_dict(cfg):
            raise ValueError(f"Configuration in {config_file} must be a mapping")

        try:
            config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        return config

    def load_dotenv(self, config_path: str | None = None) -> dict[str, str]:
        """Read KEY=value pairs from the .env file beside the config file.

        Returns
        -------
        dict[str, str]
            Values found, without touching the process environment
        """
        env_file = self.resolve_config_path(config_path).parent / ".env"

        if not env_file.is_file():
            return {}

        logger.debug("Loading environment overrides from %s", env_file)
        return {key: value for key, value in dotenv_values(env_file).items() if value is not None}

    def merge(
        self,
        file_config: Mapping[str, Any],
        environ: Mapping[str, str],
    ) -> dict[str, Any]:
        """Merge defaults, file settings and environment overrides.

        Parameters
        ----------
        file_config : Mapping[str, Any]
            Settings from devrig.yaml
        environ : Mapping[str, str]
            Environment variables, .env values already folded in

        Returns
        -------
        dict[str, Any]
            Merged settings

        Raises
        ------
        ValueError
            If the file contains unknown keys
        """
        unknown = sorted(set(file_config) - set(self.BUILT_IN_DEFAULTS))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)
        merged.update(file_config)

        for env_name, key in ENVIRONMENT_KEYS.items():
            value = environ.get(env_name)
            if value not in (None, ""):
                merged[key] = value

        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate types and enumerations of merged settings.

        Parameters
        ----------
        config : dict[str, Any]
            Merged configuration

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        for field in (
            "instance_name",
            "instance_type",
            "region",
            "key_name",
            "security_group_name",
            "iam_role_name",
            "state_file",
        ):
            if not isinstance(config.get(field), str) or not config[field]:
                raise ValueError(f"{field} must be a non-empty string")

        for field in ("tailscale_authkey", "admin_profile", "image_id", "ssh_allowed_cidr"):
            if config.get(field) is not None and not isinstance(config[field], str):
                raise ValueError(f"{field} must be a string")

        if _parse_int(config["disk_size"], "disk_size") < 8:
            raise ValueError("disk_size must be at least 8 GB")

        if _parse_int(config["waiter_max_attempts"], "waiter_max_attempts") < 1:
            raise ValueError("waiter_max_attempts must be at least 1")

        _parse_int(config["waiter_delay"], "waiter_delay")
        _parse_bool(config["enable_bedrock"], "enable_bedrock")

        if not isinstance(config["ssh_ready_delay"], (int, float)) or config["ssh_ready_delay"] < 0:
            raise ValueError("ssh_ready_delay must be a non-negative number")

        valid_os = [member.value for member in OSFamily]
        if config["os"] not in valid_os:
            raise ValueError(f"os must be one of {valid_os}, got '{config['os']}'")

        valid_modes = [member.value for member in PrivateMode]
        if str(config["private_mode"]).lower() not in valid_modes:
            raise ValueError(
                f"private_mode must be one of {valid_modes}, got '{config['private_mode']}'"
            )

        if config.get("image_id") and not re.match(r"^ami-[0-9a-f]{8,17}$", config["image_id"]):
            raise ValueError(f"Invalid AMI ID format: '{config['image_id']}'")

    def build(
        self,
        config_path: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> DevRigConfig:
        """Load, merge, validate and freeze the configuration.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file
        environ : Mapping[str, str] | None
            Environment to read overrides from (default: os.environ)

        Returns
        -------
        DevRigConfig
            Immutable configuration
        """
        if environ is None:
            environ = os.environ

        file_config = self.load_config(config_path)
        combined_env = {**self.load_dotenv(config_path), **environ}
        config = self.merge(file_config, combined_env)
        self.validate_config(config)

        return DevRigConfig(
            instance_name=config["instance_name"],
            instance_type=config["instance_type"],
            disk_size=_parse_int(config["disk_size"], "disk_size"),
            region=config["region"],
            key_name=config["key_name"],
            security_group_name=config["security_group_name"],
            iam_role_name=config["iam_role_name"],
            enable_bedrock=_parse_bool(config["enable_bedrock"], "enable_bedrock"),
            os_family=OSFamily(config["os"]),
            private_mode=PrivateMode(str(config["private_mode"]).lower()),
            tailscale_authkey=config.get("tailscale_authkey") or None,
            admin_profile=config.get("admin_profile") or None,
            image_id=config.get("image_id") or None,
            ssh_allowed_cidr=config.get("ssh_allowed_cidr") or None,
            state_file=config["state_file"],
            ssh_ready_delay=config["ssh_ready_delay"],
            waiter_delay=_parse_int(config["waiter_delay"], "waiter_delay"),
            waiter_max_attempts=_parse_int(
                config["waiter_max_attempts"], "waiter_max_attempts"
            ),
        )
