"""CLI tests driven through click's CliRunner"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from conftest import FakeExecutor, tagged_archive, write_definition

import gridware.services.container as containermod
from gridware.cli import main
from gridware.core.config import Config
from gridware.depot.depot import Depot
from gridware.deps.utils import Invoker
from gridware.services.container import ServiceContainer
from gridware.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def _isolated(current_config: Config):
    yield
    reset_logging()


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def repo(current_config: Config) -> Path:
    main_repo = Path(current_config.repo_paths[0])
    write_definition(main_repo, "libs", "zlib", "1.2.8")
    write_definition(main_repo, "apps", "hello", "1.0", {"requirements": ["zlib"]})
    write_definition(main_repo, "apps", "hello", "2.0")
    return main_repo


def _init(runner: CliRunner, name: str = "local") -> None:
    r = runner.invoke(main, ["depot", "init", name])
    assert r.exit_code == 0, r.output


class TestMain:
    def test_help(self, runner: CliRunner) -> None:
        r = runner.invoke(main, ["--help"])
        assert r.exit_code == 0
        for cmd in ("install", "import", "search", "depot", "distro-deps", "requests"):
            assert cmd in r.output

    def test_version(self, runner: CliRunner) -> None:
        r = runner.invoke(main, ["--version"])
        assert "1.0.0" in r.output


class TestRepoCommands:
    def test_search_syncs_stale_repos(self, runner: CliRunner, repo: Path) -> None:
        r = runner.invoke(main, ["search", "hello"])
        assert r.exit_code == 0, r.output
        assert "1 repository needs to update" in r.output
        assert "Updating repository: main ... SKIP (Not updateable, no remote configured)" in r.output
        assert "main/apps/hello/1.0\nmain/apps/hello/2.0" in r.output
        r = runner.invoke(main, ["search", "hello"])
        assert "needs to update" not in r.output

    def test_search_nothing(self, runner: CliRunner, repo: Path) -> None:
        r = runner.invoke(main, ["search", "nothing"])
        assert "No matching package found for: nothing" in r.output

    def test_update_unknown_repo(self, runner: CliRunner, repo: Path) -> None:
        r = runner.invoke(main, ["update", "nope"])
        assert r.exit_code == 1
        assert "Error: Repository nope not found" in r.output

    def test_repos(self, runner: CliRunner, repo: Path) -> None:
        r = runner.invoke(main, ["repos"])
        assert "main" in r.output
        assert "file:" in r.output
        assert "updated: never" in r.output


class TestDepotCommands:
    def test_init_enables(self, runner: CliRunner, current_config: Config) -> None:
        r = runner.invoke(main, ["depot", "init", "local"])
        assert "Initialized depot: local" in r.output
        assert "module use" in r.output
        r = runner.invoke(main, ["depot", "list"])
        assert "local" in r.output and "enabled" in r.output

    def test_init_disabled(self, runner: CliRunner) -> None:
        runner.invoke(main, ["depot", "init", "extra", "--disabled"])
        r = runner.invoke(main, ["depot", "list"])
        assert "disabled" in r.output

    def test_init_duplicate(self, runner: CliRunner) -> None:
        _init(runner)
        r = runner.invoke(main, ["depot", "init", "local"])
        assert r.exit_code == 1
        assert "Depot already exists" in r.output

    def test_enable_twice_warns(self, runner: CliRunner) -> None:
        _init(runner)
        r = runner.invoke(main, ["depot", "enable", "local"])
        assert "already enabled" in r.output

    def test_disable_and_enable(self, runner: CliRunner) -> None:
        _init(runner)
        r = runner.invoke(main, ["depot", "disable", "local"])
        assert "Disabling depot: local ... OK" in r.output
        r = runner.invoke(main, ["depot", "enable", "local"])
        assert "Enabling depot: local ... OK" in r.output

    def test_disable_with_loaded_modules(self, runner: CliRunner, current_config: Config) -> None:
        _init(runner)
        loaded = f"{current_config.depot_path('local')}/el7/etc/modules/apps/hello/1.0/gcc"
        r = runner.invoke(main, ["depot", "disable", "local"], env={"_LMFILES_": loaded})
        assert r.exit_code == 1
        assert loaded in r.output

    def test_unknown_depot(self, runner: CliRunner) -> None:
        r = runner.invoke(main, ["depot", "enable", "nope"])
        assert r.exit_code == 1
        assert "Could not find depot: nope" in r.output

    def test_purge(self, runner: CliRunner, current_config: Config) -> None:
        _init(runner)
        r = runner.invoke(main, ["depot", "purge", "local", "--non-interactive"])
        assert r.exit_code == 1
        assert "--yes" in r.output
        r = runner.invoke(main, ["depot", "purge", "local"], input="n\n")
        assert "Purge cancelled." in r.output
        r = runner.invoke(main, ["depot", "purge", "local", "--yes", "--non-interactive"])
        assert "Purging depot: local ... OK" in r.output
        assert Depot.names(current_config) == []

    def test_export(self, runner: CliRunner, repo: Path, tmp_path: Path) -> None:
        _init(runner)
        out = tmp_path / "export"
        r = runner.invoke(main, ["depot", "export", "local", "-o", str(out), "--no-packages"])
        assert r.exit_code == 0, r.output
        manifest = yaml.safe_load((out / "local.yml").read_text(encoding="utf-8"))
        assert manifest["content"] == []


class TestInstallCommands:
    def _archive(self, current_config: Config, tmp_path: Path) -> Path:
        hash_path = Depot.find(current_config, "local").hash_path
        return tagged_archive(
            tmp_path / "apps-hello-1.0-el7.tar.gz",
            build_depot=f"{Path(hash_path).parent}/_^DEPOT_",
        )

    def test_import_requires_archive(self, runner: CliRunner) -> None:
        r = runner.invoke(main, ["import"])
        assert r.exit_code == 1
        assert "Please supply path to archive" in r.output

    def test_import_and_list(self, runner: CliRunner, current_config: Config, repo: Path,
                             tmp_path: Path) -> None:
        _init(runner)
        archive = self._archive(current_config, tmp_path)
        r = runner.invoke(main, ["import", str(archive)])
        assert r.exit_code == 0, r.output
        assert "Processing apps/hello/1.0/gcc-4.8.5 ... OK" in r.output
        r = runner.invoke(main, ["import", str(archive)])
        assert "... EXISTS" in r.output
        r = runner.invoke(main, ["list"])
        assert r.output.strip() == "apps/hello/1.0/gcc-4.8.5"

    def test_import_unresolved_fails(self, runner: CliRunner, current_config: Config, repo: Path,
                                     tmp_path: Path) -> None:
        _init(runner)
        hash_path = Depot.find(current_config, "local").hash_path
        archive = tagged_archive(tmp_path / "apps-hello-1.0-el7.tar.gz", requirements=["nosuch"],
                                 build_depot=f"{Path(hash_path).parent}/_^DEPOT_")
        r = runner.invoke(main, ["import", str(archive)])
        assert r.exit_code == 1
        assert "Processing apps/hello/1.0/gcc-4.8.5 ... MISSING" in r.output
        assert "Error: Unable to satisfy runtime requirements: nosuch" in r.output

    def test_list_empty(self, runner: CliRunner) -> None:
        _init(runner)
        r = runner.invoke(main, ["list"])
        assert "No packages installed." in r.output

    def test_install_needs_enabled_depot(self, runner: CliRunner, repo: Path) -> None:
        runner.invoke(main, ["depot", "init", "local", "--disabled"])
        r = runner.invoke(main, ["install", "hello"])
        assert r.exit_code == 1
        assert "Depot is not enabled: local" in r.output

    def test_install_ambiguous(self, runner: CliRunner, repo: Path) -> None:
        _init(runner)
        r = runner.invoke(main, ["install", "hello"])
        assert r.exit_code == 1
        assert "More than one matching package found" in r.output
        assert "main/apps/hello/2.0" in r.output

    def test_requires(self, runner: CliRunner, current_config: Config, repo: Path) -> None:
        _init(runner)
        r = runner.invoke(main, ["requires", "hello/1.0"])
        assert r.exit_code == 0, r.output
        assert "zlib" in r.output and "MISSING" in r.output
        r = runner.invoke(main, ["requires", "hello", "--latest"])
        assert "main/apps/hello/2.0 has no runtime requirements." in r.output


class TestDistroCommands:
    @pytest.fixture()
    def unprivileged(self, current_config: Config, monkeypatch: pytest.MonkeyPatch) -> FakeExecutor:
        ex = FakeExecutor()
        container = ServiceContainer(current_config, executor=ex, invoker=Invoker(1000, 1000))
        monkeypatch.setattr(containermod, "_global", container)
        return ex

    def test_distro_deps_needs_sudo(self, runner: CliRunner, repo: Path, unprivileged: FakeExecutor) -> None:
        r = runner.invoke(main, ["distro-deps", "zlib"])
        assert r.exit_code == 0
        assert "must be executed with sudo" in r.output
        assert unprivileged.calls == []

    def test_requests_need_root(self, runner: CliRunner, unprivileged: FakeExecutor) -> None:
        r = runner.invoke(main, ["requests", "install", "--yes"])
        assert r.exit_code == 1
        assert "must be executed as root" in r.output

    def test_requests_list_and_delete(self, runner: CliRunner, unprivileged: FakeExecutor) -> None:
        r = runner.invoke(main, ["requests", "list"])
        assert "No pending installation requests." in r.output
        containermod._global.requests.file_request("alice", "hello", "zlib", "/opt/repos/main")
        r = runner.invoke(main, ["requests", "list"])
        assert "alice.zlib" in r.output
        r = runner.invoke(main, ["requests", "delete", "alice.zlib"])
        assert "Deleted alice.zlib" in r.output
        r = runner.invoke(main, ["requests", "delete", "alice.zlib"])
        assert r.exit_code == 1

    def test_whitelist(self, runner: CliRunner) -> None:
        r = runner.invoke(main, ["whitelist", "add", "package", "zlib"])
        assert "package zlib: added" in r.output
        r = runner.invoke(main, ["whitelist", "add", "package", "zlib"])
        assert "already whitelisted" in r.output
        r = runner.invoke(main, ["whitelist", "show"])
        assert "packages: zlib" in r.output
        assert "users: (none)" in r.output
