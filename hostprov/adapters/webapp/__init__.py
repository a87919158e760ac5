"""Web application adapters."""

from hostprov.adapters.webapp.occ import OccAdapter

__all__ = ["OccAdapter"]
