"""Central configuration

One Config object carries every path and switch the engine needs. It is built
from defaults, then the gridware YAML file (``gridware.<dist>.yml`` or
``gridware.yml`` in the clusterware etc directory, merged with the user's
``~/.config/gridware/gridware.yml`` in userspace mode), then the ``cw_*``
environment variables clusterware exports.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from gridware.core.exceptions import ConfigError
from gridware.utils.yaml_io import deep_merge, load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """gridware configuration"""

    # Environment-derived
    dist: str = "el7"
    cw_root: str = "/opt/clusterware"
    userspace: str = ""          # user name owning a userspace install, empty for system
    notify: bool = False

    # Layout
    depotroot: str = "/opt/gridware"
    archives_dir: str = "/opt/gridware/var/archives"
    log_root: str = "/var/log/gridware"
    config_dir: str = ""
    whitelist_file: str = ""
    requests_dir: str = ""

    # Repositories
    repo_paths: list[str] = field(
        default_factory=lambda: ["/opt/gridware/var/repos/main"],
    )
    update_period: int = 86400   # seconds
    last_update_filename: str = ".last_update"

    # Binary packages
    binary_url: str = "https://s3-eu-west-1.amazonaws.com/alces-gridware-eu-west-1/dist"
    fetch_timeout: int = 10

    # Dependency scripts
    engine_command: str = ""
    dependency_marker_file: str = ""

    extra: dict = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build from a mapping, keeping unknown keys in ``extra``."""
        known = {f.name for f in fields(cls)}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        cfg = cls(**matched)
        cfg.extra = {k: v for k, v in data.items() if k not in known}
        return cfg

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """Load a single YAML file; a missing file yields the defaults."""
        return cls.from_dict(load_yaml(path))

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Config:
        """Resolve the effective configuration for this process."""
        env = os.environ if env is None else env
        probe = cls.from_env(env)
        cfg_file = Path(path) if path else probe.find_config_file()
        data: dict[str, Any] = load_yaml(cfg_file) if cfg_file else {}

        if probe.is_userspace:
            user_file = probe.user_config_file()
            user = load_yaml(user_file)
            check_user_config(data, user)
            if user:
                logger.debug("Merging user configuration: %s", user_file)
                data = deep_merge(data, user)

        cfg = cls.from_dict(data).apply_env(env)
        logger.debug("Configuration loaded from %s", cfg_file or "<defaults>")
        return cfg

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Config:
        """Defaults overlaid with the environment only."""
        return cls().apply_env(os.environ if env is None else env)

    def apply_env(self, env: Mapping[str, str]) -> Config:
        """Overlay clusterware environment variables (in place)."""
        if env.get("cw_DIST"):
            self.dist = env["cw_DIST"]
        if env.get("cw_ROOT"):
            self.cw_root = env["cw_ROOT"]
        if "cw_GRIDWARE_userspace" in env:
            self.userspace = env["cw_GRIDWARE_userspace"]
        if "cw_GRIDWARE_notify" in env:
            self.notify = env["cw_GRIDWARE_notify"] == "true"
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def is_userspace(self) -> bool:
        return bool(self.userspace)

    def find_config_file(self) -> Path | None:
        """Distro-specific file first, then the generic one."""
        base = Path(self.config_dir or os.path.join(self.cw_root, "etc"))
        for candidate in (base / f"gridware.{self.dist}.yml", base / "gridware.yml"):
            if candidate.exists():
                return candidate
        return None

    def user_config_file(self) -> Path:
        return Path(os.path.expanduser(f"~{self.userspace}")) / ".config" / "gridware" / "gridware.yml"

    @property
    def whitelist_path(self) -> Path:
        return Path(self.whitelist_file or os.path.join(self.depotroot, "etc", "whitelist.yml"))

    @property
    def requests_path(self) -> Path:
        return Path(self.requests_dir or os.path.join(self.depotroot, "etc", "package-requests"))

    @property
    def engine(self) -> str:
        return self.engine_command or f"{self.cw_root}/bin/alces gridware"

    @property
    def dependency_marker(self) -> str:
        return self.dependency_marker_file or os.path.join(
            self.cw_root, "etc", "gridware", "dependencies.version",
        )

    def depot_path(self, depot: str) -> Path:
        """The depot's symlink under the depot root."""
        return Path(self.depotroot) / depot

    def dist_dir(self, depot: str) -> Path:
        return self.depot_path(depot) / self.dist

    def modules_dir(self, depot: str) -> Path:
        return self.dist_dir(depot) / "etc" / "modules"

    def packages_dir(self, depot: str) -> Path:
        return self.dist_dir(depot) / "pkg"

    def dependencies_dir(self, depot: str) -> Path:
        return self.dist_dir(depot) / "etc" / "depends"

    def packages_file(self, depot: str) -> Path:
        return self.dist_dir(depot) / "etc" / "packages.yml"

    def global_modulespath_file(self) -> Path:
        return Path(self.cw_root) / "etc" / "modulerc" / "modulespath"

    def user_modulespath_file(self, current_user: bool = False) -> Path:
        owner = "" if current_user else self.userspace
        return Path(os.path.expanduser(f"~{owner}")) / ".modulespath"


def check_user_config(system: Mapping[str, Any], user: Mapping[str, Any]) -> None:
    """Refuse user repositories that shadow a system-wide one by name."""
    system_names = {
        os.path.basename(os.path.normpath(p)) for p in system.get("repo_paths") or []
    }
    for path in user.get("repo_paths") or []:
        name = os.path.basename(os.path.normpath(path))
        if name in system_names:
            raise ConfigError(
                f"User repo {path} conflicts with system-wide repo with the same "
                f"name ({name}). Please correct your configuration in "
                "~/.config/gridware/gridware.yml."
            )


# Module-level accessors, initialised explicitly by the CLI entry point
_current: Config | None = None


def get_config() -> Config:
    """Current configuration, loaded from file and environment on first use."""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config.load(os.environ.get("GRIDWARE_CONFIG") or None)
    return _current


def init_config(path: str | None = None) -> Config:
    """Load the configuration for this process and make it current."""
    global _current  # noqa: PLW0603
    _current = Config.load(path)
    return _current


def load_repo_paths(cfg: Config) -> list[str]:
    """Configured repository paths, expanded and without duplicates."""
    seen: list[str] = []
    for raw in cfg.repo_paths:
        path = os.path.normpath(os.path.expanduser(str(raw)))
        if path not in seen:
            seen.append(path)
    return seen
