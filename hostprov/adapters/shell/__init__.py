"""Local shell, filesystem and mount adapters."""

from hostprov.adapters.shell.command import ShellCommandAdapter
from hostprov.adapters.shell.filesystem import FilesystemAdapter
from hostprov.adapters.shell.mount import MountAdapter

__all__ = ["FilesystemAdapter", "MountAdapter", "ShellCommandAdapter"]
