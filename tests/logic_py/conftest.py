from __future__ import annotations

from pathlib import Path

import pytest

OVERRIDE_ENV = (
    "numCPUs",
    "memoryMiB",
    "NB_TEST_DIR",
    "NB_TEST_ENABLE_NETWORK",
    "QEMU_OPTS",
    "QEMU_NET_OPTS",
)


@pytest.fixture(autouse=True)
def isolate_runner_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in OVERRIDE_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_dir(tmp_path: Path) -> Path:
    """A checkout layout with test/tests.nix and pkgs/nixpkgs-pinned.nix."""
    directory = tmp_path / "checkout" / "test"
    (directory / "lib").mkdir(parents=True)
    (directory / "tests.nix").write_text("{ scenario }: {}\n", encoding="utf-8")
    pkgs = tmp_path / "checkout" / "pkgs"
    pkgs.mkdir(parents=True)
    (pkgs / "nixpkgs-pinned.nix").write_text("{}\n", encoding="utf-8")
    return directory
