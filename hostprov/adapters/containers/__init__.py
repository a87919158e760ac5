"""Container runtime adapters."""

from hostprov.adapters.containers.docker import DockerAdapter

__all__ = ["DockerAdapter"]
