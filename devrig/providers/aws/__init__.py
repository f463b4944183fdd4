"""AWS provider for devrig."""

from devrig.providers.aws.compute import EC2Manager

__all__ = ["EC2Manager"]
