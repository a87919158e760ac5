"""hostprov — idempotent host provisioning for Nextcloud and container stacks."""

__version__ = "0.1.0"
