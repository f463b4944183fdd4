"""Local record of the provisioned instance.

The record lives in a flat ``KEY=value`` file (``.instance-info`` by default)
that can be read by humans and sourced by a shell. It is read once per
invocation and always rewritten as a whole.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path

from devrig.core.exceptions import StateFileError

logger = logging.getLogger(__name__)

FIELD_KEYS = {
    "instance_id": "INSTANCE_ID",
    "public_ip": "PUBLIC_IP",
    "key_file": "KEY_FILE",
    "region": "REGION",
    "ssh_user": "SSH_USER",
}

REQUIRED_KEYS = frozenset(("INSTANCE_ID", "KEY_FILE", "REGION", "SSH_USER"))

INSTANCE_ID_PATTERN = re.compile(r"i-[0-9a-f]{8,17}")


@dataclass(frozen=True)
class InstanceRecord:
    """Identity and connection details of the last provisioned instance.

    Attributes
    ----------
    instance_id : str
        EC2 instance ID
    public_ip : str
        Last known public address, empty while the instance is provisioning
    key_file : str
        Path to the SSH private key
    region : str
        AWS region hosting the instance
    ssh_user : str
        Remote login account name
    """

    instance_id: str
    public_ip: str
    key_file: str
    region: str
    ssh_user: str

    def with_address(self, public_ip: str | None) -> InstanceRecord:
        """Return a copy carrying a refreshed public address."""
        return replace(self, public_ip=public_ip or "")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_record(text: str, source: str = "<string>") -> InstanceRecord:
    """Parse the contents of a state file.

    Parameters
    ----------
    text : str
        File contents
    source : str
        Name used in error messages

    Returns
    -------
    InstanceRecord
        Parsed record

    Raises
    ------
    StateFileError
        If a line is not ``KEY=value``, a key is unknown or repeated, a
        required key is missing, or INSTANCE_ID is empty or malformed
    """
    known_keys = set(FIELD_KEYS.values())
    values: dict[str, str] = {}

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            raise StateFileError(f"{source}:{lineno}: expected KEY=value, got {line!r}")

        key, _, value = line.partition("=")
        key = key.strip()

        if key.startswith("export "):
            key = key[len("export ") :].strip()

        if key not in known_keys:
            raise StateFileError(f"{source}:{lineno}: unknown key {key!r}")

        if key in values:
            raise StateFileError(f"{source}:{lineno}: duplicate key {key!r}")

        values[key] = _unquote(value.strip())

    missing = sorted(REQUIRED_KEYS - values.keys())
    if missing:
        raise StateFileError(f"{source}: missing required keys: {', '.join(missing)}")

    if not values["INSTANCE_ID"]:
        raise StateFileError(f"{source}: INSTANCE_ID is empty")

    if not INSTANCE_ID_PATTERN.fullmatch(values["INSTANCE_ID"]):
        raise StateFileError(
            f"{source}: INSTANCE_ID {values['INSTANCE_ID']!r} is not an EC2 instance ID"
        )

    return InstanceRecord(
        **{field: values.get(key, "") for field, key in FIELD_KEYS.items()}
    )


def format_record(record: InstanceRecord) -> str:
    """Render a record as ``KEY=value`` lines."""
    lines = [f"{key}={getattr(record, field)}" for field, key in FIELD_KEYS.items()]
    return "\n".join(lines) + "\n"


class LocalStateStore:
    """Load, save and clear the local instance record.

    Parameters
    ----------
    path : str | Path
        Location of the state file
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> InstanceRecord | None:
        """Read the record.

        Returns
        -------
        InstanceRecord | None
            The stored record, or None when the file does not exist

        Raises
        ------
        StateFileError
            If the file exists but is malformed or unreadable
        """
        try:
            text = self.path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateFileError(f"Failed to read {self.path}: {e}") from e

        return parse_record(text, source=str(self.path))

    def save(self, record: InstanceRecord) -> None:
        """Replace the stored record atomically.

        The content is written to a temporary file in the same directory and
        renamed over the target, so an interrupted write leaves the previous
        record intact.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )

        try:
            with os.fdopen(fd, "w") as f:
                f.write(format_record(record))
            os.chmod(temp_name, 0o600)
            os.replace(temp_name, self.path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved instance record %s to %s", record.instance_id, self.path)

    def clear(self) -> None:
        """Delete the record if present."""
        try:
            self.path.unlink()
            logger.debug("Removed instance record %s", self.path)
        except FileNotFoundError:
            pass
