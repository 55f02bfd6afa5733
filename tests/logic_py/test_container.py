from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from nbtest import container as container_mod
from nbtest.config import RunConfig
from nbtest.container import ContainerError


def _config(test_dir: Path) -> RunConfig:
    return RunConfig(
        test_dir=test_dir,
        scenario="netns",
        out_link_prefix="",
        num_cpus=1,
        memory_mib=2048,
        nix_path="nixpkgs=/nix/store/pinned",
    )


def _install_script(test_dir: Path) -> Path:
    script = test_dir / "lib" / "make-container.sh"
    script.write_text("#!/usr/bin/env bash\n", encoding="utf-8")
    return script


def test_run_container_requires_script(test_dir: Path):
    with pytest.raises(ContainerError, match="Container script not found"):
        container_mod.run_container(_config(test_dir), [])


def test_run_container_invokes_script_with_scenario(monkeypatch: pytest.MonkeyPatch, test_dir: Path):
    script = _install_script(test_dir)
    seen: dict[str, object] = {}

    def fake_run(args, **kwargs):
        seen["args"] = args
        seen["env"] = kwargs["env"]
        return subprocess.CompletedProcess(args=args, returncode=0)

    monkeypatch.setattr(container_mod.subprocess, "run", fake_run)
    container_mod.run_container(_config(test_dir), ["--run", "c", "nodeinfo"])

    assert seen["args"] == ["bash", str(script), "--run", "c", "nodeinfo"]
    env = seen["env"]
    assert env["scenario"] == "netns"
    assert env["testDir"] == str(test_dir)
    assert env["NIX_PATH"] == "nixpkgs=/nix/store/pinned"


def test_run_container_propagates_exit_status(monkeypatch: pytest.MonkeyPatch, test_dir: Path):
    _install_script(test_dir)
    monkeypatch.setattr(
        container_mod.subprocess,
        "run",
        lambda args, **kwargs: subprocess.CompletedProcess(args=args, returncode=4),
    )
    with pytest.raises(ContainerError, match="exited with status 4") as exc_info:
        container_mod.run_container(_config(test_dir), [])
    assert exc_info.value.exit_code == 4


def test_run_container_reports_signal_death(monkeypatch: pytest.MonkeyPatch, test_dir: Path):
    _install_script(test_dir)
    monkeypatch.setattr(
        container_mod.subprocess,
        "run",
        lambda args, **kwargs: subprocess.CompletedProcess(args=args, returncode=-2),
    )
    with pytest.raises(ContainerError, match="Container script killed by signal 2") as exc_info:
        container_mod.run_container(_config(test_dir), [])
    assert exc_info.value.exit_code == 130
