"""
Shared test fixtures and configuration.

Nothing here touches the real host: commands go through ``FakeRunner``,
facts come from ``FakeProbe`` and actions land in ``RecordingAdapter``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from hostprov.adapters.base import ExecutionContext
from hostprov.adapters.mock import MockAdapter
from hostprov.adapters.registry import AdapterRegistry
from hostprov.core.models.action import Receipt
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import FactValue, HostFact
from hostprov.core.runner import CommandResult
from hostprov.core.secrets.generator import generate_credentials


class FakeRunner:
    """Scripted command runner.

    Responses are matched on the longest argv prefix; anything not
    scripted answers with ``default``.
    """

    def __init__(self, default: CommandResult | None = None):
        self.default = default or CommandResult(returncode=0)
        self.responses: list[tuple[tuple[str, ...], CommandResult]] = []
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    def on(self, prefix: Sequence[str], returncode: int = 0, stdout: str = "", stderr: str = "",
           not_found: bool = False, timed_out: bool = False) -> FakeRunner:
        self.responses.append((
            tuple(prefix),
            CommandResult(returncode, stdout, stderr, not_found=not_found, timed_out=timed_out),
        ))
        return self

    def __call__(self, argv, **kwargs) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.kwargs.append(kwargs)
        best: CommandResult | None = None
        best_len = -1
        for prefix, result in self.responses:
            if tuple(argv[: len(prefix)]) == prefix and len(prefix) > best_len:
                best, best_len = result, len(prefix)
        return best if best is not None else self.default


class FakeProbe:
    """Fact source backed by a dict; ``refresh`` reads the current values."""

    def __init__(self, facts: dict[str, FactValue] | None = None):
        self.facts: dict[str, FactValue] = dict(facts or {})
        self.refreshed: list[tuple[str, ...]] = []

    def refresh(self, snapshot: HostFact, keys: Iterable[str]) -> HostFact:
        keys = tuple(keys)
        self.refreshed.append(keys)
        return snapshot.merged({k: self.facts.get(k) for k in keys})


class RecordingAdapter(MockAdapter):
    """Mock adapter that makes a step's facts true when its actions run."""

    def __init__(self, probe: FakeProbe, effects: dict[str, Iterable[str]] | None = None):
        super().__init__()
        self.probe = probe
        self.effects = {k: tuple(v) for k, v in (effects or {}).items()}

    def execute(self, context: ExecutionContext) -> Receipt:
        receipt = super().execute(context)
        if receipt.ok:
            for key in self.effects.get(context.action.for_step or "", ()):
                self.probe.facts[key] = True
        return receipt


class ScriptedHostProbe(FakeProbe):
    """Stands in for HostProbe: Ubuntu 22.04 amd64, unscripted keys read as absent."""

    def probe(self, keys: Iterable[str] = ()) -> HostFact:
        return HostFact(
            os_id="ubuntu", os_version="22.04", codename="jammy", arch="amd64",
            facts={k: self.facts.get(k, False) for k in keys},
        )

    def refresh(self, snapshot: HostFact, keys: Iterable[str]) -> HostFact:
        keys = tuple(keys)
        self.refreshed.append(keys)
        return snapshot.merged({k: self.facts.get(k, False) for k in keys})


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def nextcloud_config(tmp_state_dir: Path) -> DesiredConfig:
    return DesiredConfig(profile="nextcloud", hostname="cloud01", state_dir=str(tmp_state_dir))


@pytest.fixture
def containers_config(tmp_state_dir: Path) -> DesiredConfig:
    return DesiredConfig(
        profile="containers",
        hostname="docker01",
        containers={"target_user": "deploy", "public_ip": "203.0.113.7"},
        state_dir=str(tmp_state_dir),
    )


@pytest.fixture
def credentials() -> CredentialRecord:
    return generate_credentials("admin")


@pytest.fixture
def ubuntu_facts() -> HostFact:
    return HostFact(os_id="ubuntu", os_version="22.04", codename="jammy", arch="amd64")


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def mock_registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    return AdapterRegistry(mock_mode=True, mock_adapter=mock_adapter)
