import os
import sys
import threading
import time

import pytest

from codegrade.services.process_runner import (
    CancellationToken,
    ProcessRunner,
    ResourceLimits,
    sanitize_env,
)

runner = ProcessRunner()
posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX process groups and rlimits")


def test_successful_run_captures_stdout(tmp_path):
    outcome = runner.run(sys.executable, ["-c", "print('hello')"], tmp_path, 5000)
    assert outcome.exit_succeeded
    assert outcome.exit_code == 0
    assert outcome.stdout == "hello\n"
    assert not outcome.timed_out


def test_nonzero_exit_and_stderr(tmp_path):
    code = "import sys; sys.stderr.write('bad things'); sys.exit(3)"
    outcome = runner.run(sys.executable, ["-c", code], tmp_path, 5000)
    assert not outcome.exit_succeeded
    assert outcome.exit_code == 3
    assert "bad things" in outcome.stderr


def test_stdin_is_forwarded(tmp_path):
    code = "import sys; print(sys.stdin.read().upper())"
    outcome = runner.run(sys.executable, ["-c", code], tmp_path, 5000, stdin="abc")
    assert outcome.stdout.strip() == "ABC"


def test_runs_in_given_directory(tmp_path):
    code = "import os; print(os.getcwd())"
    outcome = runner.run(sys.executable, ["-c", code], tmp_path, 5000)
    assert os.path.realpath(outcome.stdout.strip()) == os.path.realpath(str(tmp_path))


def test_timeout_kills_process(tmp_path):
    started = time.monotonic()
    outcome = runner.run(sys.executable, ["-c", "import time; time.sleep(30)"], tmp_path, 300)
    elapsed = time.monotonic() - started
    assert outcome.timed_out
    assert not outcome.exit_succeeded
    assert "timed out" in outcome.stderr
    assert elapsed < 10


@posix_only
def test_timeout_kills_grandchildren(tmp_path):
    code = (
        "import subprocess, sys, time\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
        "time.sleep(30)\n"
    )
    started = time.monotonic()
    outcome = runner.run(sys.executable, ["-c", code], tmp_path, 500)
    assert outcome.timed_out
    assert time.monotonic() - started < 10


def test_missing_command_is_spawn_failure(tmp_path):
    outcome = runner.run("codegrade-no-such-binary", [], tmp_path, 1000)
    assert outcome.spawn_failed
    assert not outcome.exit_succeeded
    assert "Failed to start 'codegrade-no-such-binary'" in outcome.stderr


def test_cancelled_token_prevents_spawn(tmp_path):
    token = CancellationToken()
    token.cancel()
    outcome = runner.run(sys.executable, ["-c", "print('x')"], tmp_path, 5000, cancel_token=token)
    assert outcome.cancelled
    assert outcome.stdout == ""


def test_cancel_while_running(tmp_path):
    token = CancellationToken()
    timer = threading.Timer(0.3, token.cancel)
    timer.start()
    try:
        started = time.monotonic()
        outcome = runner.run(
            sys.executable, ["-c", "import time; time.sleep(30)"], tmp_path, 20000, cancel_token=token
        )
    finally:
        timer.cancel()
    assert outcome.cancelled
    assert not outcome.timed_out
    assert time.monotonic() - started < 10


def test_sanitized_env_drops_unlisted_variables(monkeypatch):
    monkeypatch.setenv("CODEGRADE_SECRET_TOKEN", "hunter2")
    env = sanitize_env()
    assert "CODEGRADE_SECRET_TOKEN" not in env
    if os.environ.get("PATH"):
        assert env["PATH"] == os.environ["PATH"]


@posix_only
def test_resource_limits_allow_normal_programs(tmp_path):
    limits = ResourceLimits(cpu_seconds=5, memory_mb=256)
    outcome = runner.run(sys.executable, ["-c", "print(sum(range(1000)))"], tmp_path, 10000, limits=limits)
    assert outcome.exit_succeeded
    assert outcome.stdout.strip() == "499500"
