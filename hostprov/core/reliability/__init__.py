"""Retry and backoff helpers."""

from hostprov.core.reliability.retry import backoff_delay, policy_delay

__all__ = ["backoff_delay", "policy_delay"]
