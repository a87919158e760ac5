"""Read-only host fact probe."""

from hostprov.core.probe.facts import HostProbe, occ_argv, parse_os_release, probe

__all__ = ["HostProbe", "occ_argv", "parse_os_release", "probe"]
