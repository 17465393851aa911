"""ServiceContainer unit tests"""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeExecutor

import gridware.core.config as cfgmod
from gridware.core.config import Config
from gridware.deps.utils import Invoker
from gridware.services.container import (
    ServiceContainer,
    get_container,
    reset_container,
)


@pytest.fixture(autouse=True)
def _setup_config(current_config: Config):
    """Every test gets an isolated configuration"""
    yield


class TestServiceContainer:
    def test_lazy_loading(self) -> None:
        c = ServiceContainer()
        assert len(c._instances) == 0
        _ = c.repos
        assert "repos" in c._instances
        assert "git" in c._instances

    def test_shared_instances(self) -> None:
        c = ServiceContainer()
        assert c.resolver is c.resolver
        assert c.resolver.repos is c.repos
        assert c.importer is c.importer
        assert c.distro.whitelist is c.whitelist

    def test_store_per_depot(self) -> None:
        c = ServiceContainer()
        assert c.store("local") is c.store("local")
        assert c.store("local") is not c.store("other")

    def test_uses_current_config(self, current_config: Config) -> None:
        assert ServiceContainer().config is current_config

    def test_repos_from_config(self, current_config: Config) -> None:
        c = ServiceContainer()
        assert [r.name for r in c.repos] == ["main"]

    def test_whitelist_path(self, current_config: Config) -> None:
        assert ServiceContainer().whitelist.path == current_config.whitelist_path

    def test_requests_notify_command(self, current_config: Config) -> None:
        c = ServiceContainer(invoker=Invoker(0, 0))
        assert c.requests.notify_command == str(
            Path(current_config.cw_root) / "libexec" / "share" / "package-install-notify"
        )

    def test_installer_reaches_importer(self) -> None:
        c = ServiceContainer()
        assert c.installer._importer() is c.importer

    def test_executor_injected(self) -> None:
        ex = FakeExecutor()
        c = ServiceContainer(executor=ex)
        assert c.git._executor is ex
        assert c.importer._executor is ex

    def test_depot_lookup(self, current_config: Config) -> None:
        from gridware.depot.depot import Depot
        Depot.create(current_config, "local")
        c = ServiceContainer()
        assert c.depot("local").name == "local"
        assert c.depot("nope") is None

    def test_invalidate_before_load_is_noop(self) -> None:
        c = ServiceContainer()
        c.invalidate_definitions()
        assert "repos" not in c._instances


class TestGlobalContainer:
    def test_singleton(self) -> None:
        assert get_container() is get_container()

    def test_reset(self) -> None:
        first = get_container()
        reset_container()
        assert get_container() is not first

    def test_lazy_config_load(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        f = tmp_path / "gridware.yml"
        f.write_text("depotroot: /srv/depots\n", encoding="utf-8")
        monkeypatch.setattr(cfgmod, "_current", None)
        monkeypatch.setenv("GRIDWARE_CONFIG", str(f))
        reset_container()
        assert get_container().config.depotroot == "/srv/depots"
