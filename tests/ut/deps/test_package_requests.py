"""PackageRequestQueue unit tests"""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeExecutor

from gridware.core.exceptions import NotFoundError, PermissionDeniedError
from gridware.deps.requests import Decision, PackageRequestQueue, user_email
from gridware.deps.utils import Invoker
from gridware.deps.whitelist import Whitelist

ROOT = Invoker(0, 0)


def _queue(tmp_path: Path, executor: FakeExecutor | None = None,
           invoker: Invoker = ROOT, notify: str | None = None) -> PackageRequestQueue:
    return PackageRequestQueue(
        tmp_path / "requests",
        dist="el7",
        whitelist=Whitelist(tmp_path / "whitelist.yml"),
        executor=executor or FakeExecutor(),
        invoker=invoker,
        log_root=str(tmp_path / "log"),
        notify_command=notify,
    )


class TestFiling:
    def test_file_and_read_back(self, tmp_path: Path) -> None:
        q = _queue(tmp_path)
        req = q.file_request("alice", "hello", "zlib-devel", "/opt/repos/main")
        assert req.id == "alice.zlib-devel"
        text = (tmp_path / "requests" / req.id).read_text(encoding="utf-8")
        assert text == "alice hello zlib-devel /opt/repos/main\n"
        got = q.get(req.id)
        assert (got.user, got.package, got.distro_package, got.repo_path) == (
            "alice", "hello", "zlib-devel", "/opt/repos/main",
        )
        assert got.filed is not None

    def test_path_with_space_round_trips(self, tmp_path: Path) -> None:
        q = _queue(tmp_path)
        q.file_request("alice", "hello", "zlib", "/opt/my repos/main")
        assert q.get("alice.zlib").repo_path == "/opt/my repos/main"

    def test_id_is_sanitised(self, tmp_path: Path) -> None:
        req = _queue(tmp_path).file_request("a/b", "x", "../etc", "/r")
        assert "/" not in req.id
        assert (tmp_path / "requests" / req.id).is_file()

    def test_list_and_delete(self, tmp_path: Path) -> None:
        q = _queue(tmp_path)
        assert q.list() == []
        q.file_request("alice", "hello", "zlib", "/r")
        q.file_request("bob", "hello", "zlib", "/r")
        assert [r.id for r in q.list()] == ["alice.zlib", "bob.zlib"]
        assert q.delete("alice.zlib") is True
        assert q.delete("alice.zlib") is False
        with pytest.raises(NotFoundError):
            q.get("alice.zlib")


class TestProcess:
    def test_requires_root(self, tmp_path: Path) -> None:
        with pytest.raises(PermissionDeniedError, match="root"):
            _queue(tmp_path, invoker=Invoker(1000, 1000)).process(lambda r: Decision.INSTALL)

    def test_decisions(self, tmp_path: Path) -> None:
        ex = FakeExecutor(lambda cmd: 1 if "pkg-c" in cmd else 0)
        q = _queue(tmp_path, ex)
        for user, pkg in (("u1", "pkg-a"), ("u2", "pkg-b"), ("u3", "pkg-c"), ("u4", "pkg-d")):
            q.file_request(user, "hello", pkg, "/r")
        answers = {"u1.pkg-a": Decision.INSTALL, "u2.pkg-b": Decision.SKIP,
                   "u3.pkg-c": Decision.INSTALL, "u4.pkg-d": Decision.DELETE}
        report = q.process(lambda r: answers[r.id])
        assert report.installed == ["u1.pkg-a"]
        assert report.skipped == ["u2.pkg-b"]
        assert report.failed == ["u3.pkg-c"]
        assert report.deleted == ["u4.pkg-d"]
        assert sorted(r.id for r in q.list()) == ["u2.pkg-b", "u3.pkg-c"]
        assert q.whitelist.packages == ["pkg-a"]

    def test_install_all_stops_asking(self, tmp_path: Path) -> None:
        q = _queue(tmp_path)
        for user in ("u1", "u2", "u3"):
            q.file_request(user, "hello", "zlib", "/r")
        asked: list[str] = []

        def decide(r):
            asked.append(r.id)
            return Decision.INSTALL_ALL

        report = q.process(decide)
        assert asked == ["u1.zlib"]
        assert report.installed == ["u1.zlib", "u2.zlib", "u3.zlib"]
        assert q.list() == []

    def test_install_command(self, tmp_path: Path) -> None:
        ex = FakeExecutor()
        q = _queue(tmp_path, ex)
        q.file_request("u1", "hello", "zlib", "/r")
        q.process(lambda r: Decision.INSTALL)
        assert ex.calls[0].startswith("env -i /usr/bin/yum install -y zlib >>")

    def test_notify(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("gridware.deps.requests.user_email", lambda u: f"{u}@example.com")
        ex = FakeExecutor()
        q = _queue(tmp_path, ex, notify="/opt/cw/libexec/share/package-install-notify")
        q.file_request("u1", "hello", "zlib", "/r")
        q.process(lambda r: Decision.INSTALL)
        assert ex.calls[-1] == [
            "/opt/cw/libexec/share/package-install-notify", "u1", "hello", "zlib", "/r",
            "u1@example.com",
        ]


class TestUserEmail:
    def test_unknown_user(self) -> None:
        assert user_email("no-such-user-xyz") == ""

    def test_reads_user_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg = tmp_path / "gridware" / "etc" / "gridware.yml"
        cfg.parent.mkdir(parents=True)
        cfg.write_text("user_email: a@example.com\n", encoding="utf-8")
        monkeypatch.setattr("gridware.deps.requests.os.path.expanduser", lambda p: str(tmp_path))
        assert user_email("alice") == "a@example.com"
