"""
End-to-end tests for agent liveness.

Starts gip-server as a subprocess with a short heartbeat expiry, then
drives it with the real runner process and plain HTTP calls.
"""

import os
import signal
import socket
import subprocess
import sys
import tempfile
import time
from pathlib import Path

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def wait_for_server_ready(proc, url, max_wait=15):
    """
    Wait for the server to answer /health.

    Raises:
        RuntimeError: If the server crashes or doesn't become ready
    """
    wait_interval = 0.2

    for _ in range(int(max_wait / wait_interval)):
        if proc.poll() is not None:
            _, stderr = proc.communicate()
            raise RuntimeError(f"Server crashed during startup. stderr: {stderr.decode()}")

        try:
            if requests.get(f"{url}/health", timeout=1).status_code == 200:
                return
        except requests.exceptions.RequestException:
            pass

        time.sleep(wait_interval)

    raise RuntimeError(f"Server at {url} did not become ready within {max_wait} seconds")


def wait_for(condition, timeout=10.0, interval=0.1):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return False


def stop_process(proc):
    if proc.poll() is None:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


@pytest.fixture
def server(tmp_path):
    """Start gip-server with a 1s heartbeat expiry and tear it down after the test."""
    fd, db_path = tempfile.mkstemp(suffix=".db", prefix="gip_e2e_")
    os.close(fd)
    port = free_port()
    url = f"http://127.0.0.1:{port}"

    proc = subprocess.Popen(
        [
            sys.executable, "-m", "gip_server",
            "--host", "127.0.0.1",
            "--port", str(port),
            "--db-path", db_path,
            "--workspace", str(tmp_path / "workspace"),
            "--agent-timeout", "1",
            "--sweep-interval", "0.2",
        ],
        cwd=PROJECT_ROOT,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
    )

    try:
        wait_for_server_ready(proc, url)
        yield url
    finally:
        stop_process(proc)
        if os.path.exists(db_path):
            os.unlink(db_path)


def agent_by_name(url, name):
    agents = requests.get(f"{url}/agents", timeout=5).json()["agents"]
    return next((a for a in agents if a["name"] == name), None)


class TestAgentLifecycle:
    """Registration, heartbeats, sweeping and shutdown over real HTTP."""

    def test_runner_process(self, server):
        """The runner goes ONLINE, stays ONLINE, and reports OFFLINE on SIGTERM."""
        runner = subprocess.Popen(
            [
                sys.executable, "-m", "gip_runner",
                "--server-url", server,
                "--name", "e2e-runner",
                "--label", "pool=e2e",
                "--interval", "0.2",
            ],
            cwd=PROJECT_ROOT,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

        try:
            assert wait_for(
                lambda: (agent_by_name(server, "e2e-runner") or {}).get("status") == "ONLINE"
            )

            # Several expiry periods pass while heartbeats keep it alive
            time.sleep(2.5)
            agent = agent_by_name(server, "e2e-runner")
            assert agent["status"] == "ONLINE"
            assert agent["labels"]["pool"] == "e2e"
            assert set(agent["labels"]) >= {"os", "arch"}

            runner.send_signal(signal.SIGTERM)
            assert runner.wait(timeout=10) == 0
            assert agent_by_name(server, "e2e-runner")["status"] == "OFFLINE"
        finally:
            stop_process(runner)

    def test_silent_agent_is_swept(self, server):
        agent = requests.post(
            f"{server}/agents/register", json={"name": "silent", "labels": {}}, timeout=5
        ).json()
        requests.post(f"{server}/agents/{agent['id']}/heartbeat", timeout=5)
        assert agent_by_name(server, "silent")["status"] == "ONLINE"

        assert wait_for(lambda: agent_by_name(server, "silent")["status"] == "OFFLINE", timeout=5)

        # A late heartbeat revives it
        requests.post(f"{server}/agents/{agent['id']}/heartbeat", timeout=5)
        assert agent_by_name(server, "silent")["status"] == "ONLINE"

    def test_draining_agent_is_not_swept(self, server):
        agent = requests.post(
            f"{server}/agents/register", json={"name": "draining", "labels": {}}, timeout=5
        ).json()
        response = requests.put(
            f"{server}/agents/{agent['id']}/status", json={"status": "DRAINING"}, timeout=5
        )
        assert response.status_code == 200

        time.sleep(2)

        assert agent_by_name(server, "draining")["status"] == "DRAINING"

    def test_duplicate_runner_name_fails(self, server):
        requests.post(
            f"{server}/agents/register", json={"name": "taken", "labels": {}}, timeout=5
        )

        result = subprocess.run(
            [sys.executable, "-m", "gip_runner", "-c", server, "-n", "taken"],
            cwd=PROJECT_ROOT,
            capture_output=True,
            timeout=30,
        )

        assert result.returncode == 1
