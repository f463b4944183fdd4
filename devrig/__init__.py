"""devrig: provision, connect to, and tear down an EC2 development instance."""

__version__ = "0.1.0"
