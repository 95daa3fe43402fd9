"""
Shared fixtures: throwaway git repositories and a stand-in Go toolchain.

The fake toolchain is a shell script that understands the two commands the
build pipeline runs (`go mod download` and `go build -o <out> <pkg>`), so
pipeline tests do not need a real Go installation.
"""

import os
import stat
import subprocess
from pathlib import Path

import pytest

GIP_VARIABLES = (
    "GIP_DB_PATH",
    "GIP_WORKSPACE",
    "GIP_BUILD_TIMEOUT",
    "GIP_AGENT_TIMEOUT",
    "GIP_SWEEP_INTERVAL",
    "GIP_GO_BINARY",
    "GIP_SERVER_URL",
)

FAKE_GO_OK = r"""#!/bin/sh
case "$1" in
  mod)
    echo "go: downloading example.com/dep v1.0.0"
    exit 0
    ;;
  build)
    shift
    out=""
    while [ $# -gt 0 ]; do
      if [ "$1" = "-o" ]; then
        out="$2"
        shift
      fi
      shift
    done
    echo "building $out"
    printf '#!/bin/sh\necho hello from build\n' > "$out"
    chmod +x "$out"
    exit 0
    ;;
esac
echo "unexpected go command: $*" >&2
exit 2
"""

FAKE_GO_COMPILE_ERROR = r"""#!/bin/sh
case "$1" in
  mod)
    exit 0
    ;;
  build)
    echo "./cmd/main.go:5:2: undefined: fmt.Printn" >&2
    exit 1
    ;;
esac
exit 2
"""

FAKE_GO_HANGS = r"""#!/bin/sh
echo "resolving modules"
sleep 30
"""

FAKE_GO_NO_OUTPUT = r"""#!/bin/sh
echo "pretending to build"
exit 0
"""


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        [
            "git",
            "-c",
            "user.name=GIP Tests",
            "-c",
            "user.email=tests@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def make_git_repo(tmp_path):
    """
    Factory creating a local git repository with one commit.

    Usage: make_git_repo({"cmd/main.go": "..."}, name="repo", branch="main")
    """

    def make(files: dict[str, str], name: str = "repo", branch: str = "main") -> Path:
        repo = tmp_path / "remotes" / name
        repo.mkdir(parents=True)
        for rel_path, content in files.items():
            path = repo / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

        _git(repo, "init", "-q")
        _git(repo, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
        _git(repo, "add", "-A")
        _git(repo, "commit", "-q", "-m", "initial commit")
        return repo

    return make


FAKE_GO_SCRIPTS = {
    "ok": FAKE_GO_OK,
    "compile_error": FAKE_GO_COMPILE_ERROR,
    "hangs": FAKE_GO_HANGS,
    "no_output": FAKE_GO_NO_OUTPUT,
}


@pytest.fixture
def make_fake_go(tmp_path):
    """
    Factory writing an executable fake `go` script and returning its path.

    Usage: make_fake_go("compile_error"); see FAKE_GO_SCRIPTS for the behaviors.
    """
    counter = 0

    def make(behavior: str = "ok") -> str:
        nonlocal counter
        counter += 1
        script = FAKE_GO_SCRIPTS[behavior]
        bin_dir = tmp_path / f"fake-go-{counter}"
        bin_dir.mkdir()
        path = bin_dir / "go"
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return make


@pytest.fixture
def clean_gip_env(monkeypatch):
    """
    Remove GIP_* variables inherited from the developer's shell.

    Every known variable is registered with monkeypatch, so values written
    straight into os.environ by the code under test are undone as well.
    """
    names = {name for name in os.environ if name.startswith("GIP_")}
    names.update(GIP_VARIABLES)
    for name in names:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch
