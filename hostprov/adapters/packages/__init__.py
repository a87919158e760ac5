"""Package manager adapters."""

from hostprov.adapters.packages.apt import AptAdapter

__all__ = ["AptAdapter"]
