"""
Adapters — the only code that changes the host.

Each adapter wraps one external tool and answers every action with a
Receipt. The executor reaches them through ``AdapterRegistry``.
"""

from hostprov.adapters.base import Adapter, CommandAdapter, ExecutionContext
from hostprov.adapters.mock import MockAdapter
from hostprov.adapters.registry import AdapterRegistry

__all__ = ["Adapter", "AdapterRegistry", "CommandAdapter", "ExecutionContext", "MockAdapter"]
