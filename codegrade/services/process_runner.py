"""Process runner - spawn one external command with a hard wall-clock bound"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

from codegrade.config import settings

logger = logging.getLogger(__name__)

# Limit concurrent child processes to prevent resource exhaustion
_execution_semaphore = threading.Semaphore(max(1, settings.EXECUTION_MAX_PROCESSES))

# How often a waiting runner wakes up to check for cancellation
_POLL_INTERVAL_SECONDS = 0.05
# How long to wait for pipes to drain after the process group was killed
_KILL_GRACE_SECONDS = 2.0


class CancellationToken:
    """Caller-held handle that aborts a running job via the timeout kill path."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ResourceLimits:
    """Best-effort POSIX rlimits for a child process. Not a sandbox."""
    cpu_seconds: int
    memory_mb: Optional[int] = None
    max_file_bytes: int = 10 * 1024 * 1024
    max_open_files: int = 256


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of exactly one spawned process"""
    exit_succeeded: bool
    stdout: str
    stderr: str
    exit_code: Optional[int] = None
    timed_out: bool = False
    spawn_failed: bool = False
    cancelled: bool = False
    duration_ms: int = 0


def sanitize_env() -> Dict[str, str]:
    """
    Return a constrained environment for child processes.

    Toolchain home variables are kept so go/cargo/dotnet find their caches.
    """
    allowed_keys = {
        "PATH",
        "HOME",
        "LANG",
        "LC_ALL",
        "TMPDIR",
        "SystemRoot",
        "WINDIR",
        "XDG_CACHE_HOME",
        "GOCACHE",
        "GOPATH",
        "GOROOT",
        "CARGO_HOME",
        "RUSTUP_HOME",
        "JAVA_HOME",
        "DOTNET_ROOT",
        "MONO_PATH",
    }
    sanitized = {}
    for key in allowed_keys:
        value = os.environ.get(key)
        if value:
            sanitized[key] = value
    return sanitized


def _resource_preexec(limits: Optional[ResourceLimits]) -> Optional[Callable[[], None]]:
    """
    Apply per-process resource limits on Unix.
    """
    if limits is None or os.name == "nt":
        return None
    try:
        import resource
    except ImportError:
        return None

    def _cap(kind: int, value: int) -> None:
        # Never raise from preexec_fn; a limit the host refuses is skipped.
        try:
            resource.setrlimit(kind, (value, value))
        except (ValueError, OSError):
            pass

    def _set_limits():
        # CPU time seconds; the kernel sends SIGXCPU then SIGKILL.
        _cap(resource.RLIMIT_CPU, max(1, int(limits.cpu_seconds)))

        # Address space. JVM, V8, CLR and Go reserve far more virtual memory
        # than they use, so adapters for those runtimes pass memory_mb=None.
        if limits.memory_mb is not None:
            _cap(resource.RLIMIT_AS, max(16, limits.memory_mb) * 1024 * 1024)

        # RLIMIT_NPROC is left alone: it counts every thread of the uid and
        # starves the Go and JVM runtimes on shared hosts.

        # File size and open file handles.
        _cap(resource.RLIMIT_FSIZE, limits.max_file_bytes)
        _cap(resource.RLIMIT_NOFILE, limits.max_open_files)

    return _set_limits


def _terminate_tree(proc: subprocess.Popen) -> None:
    """Kill the child and everything it spawned into its process group."""
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.warning(f"Failed to kill process group {proc.pid}: {e}")
        proc.kill()


def _drain(proc: subprocess.Popen) -> tuple:
    """Collect whatever output is left after a kill without blocking forever."""
    try:
        return proc.communicate(timeout=_KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        # A grandchild escaped the process group and still holds the pipes.
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        proc.wait(timeout=_KILL_GRACE_SECONDS)
        return "", ""


class ProcessRunner:
    """Runs one command per call; never lets the child outlive its timeout."""

    def run(
        self,
        command: str,
        args: Sequence[Union[str, Path]],
        cwd: Union[str, Path],
        timeout_ms: int,
        stdin: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        limits: Optional[ResourceLimits] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProcessOutcome:
        """
        Spawn ``command args...`` in ``cwd`` and wait for it.

        Args:
            command: Executable name or path
            args: Arguments
            cwd: Working directory (the job's workspace)
            timeout_ms: Wall-clock bound; the process group is killed on expiry
            stdin: Optional text fed to the process; stdin is closed otherwise
            env: Environment, defaults to the sanitized environment
            limits: Optional rlimits applied in the child
            cancel_token: Optional token polled while waiting

        Returns:
            ProcessOutcome; spawn failures and timeouts are reported in it,
            never raised
        """
        argv = [str(command), *[str(a) for a in args]]
        timeout_seconds = max(0.001, timeout_ms / 1000.0)

        if cancel_token is not None and cancel_token.cancelled:
            return ProcessOutcome(
                exit_succeeded=False, stdout="", stderr="Execution cancelled", cancelled=True
            )

        _execution_semaphore.acquire()
        try:
            start = time.monotonic()
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=str(cwd),
                    stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    env=env if env is not None else sanitize_env(),
                    start_new_session=(os.name == "posix"),
                    preexec_fn=_resource_preexec(limits),
                )
            except OSError as e:
                logger.warning(f"Failed to spawn {argv[0]}: {e}")
                return ProcessOutcome(
                    exit_succeeded=False,
                    stdout="",
                    stderr=f"Failed to start '{argv[0]}': {e.strerror or e}",
                    spawn_failed=True,
                )

            deadline = start + timeout_seconds
            timed_out = cancelled = False
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    break
                wait = min(remaining, _POLL_INTERVAL_SECONDS) if cancel_token is not None else remaining
                try:
                    stdout, stderr = proc.communicate(input=stdin, timeout=wait)
                    break
                except subprocess.TimeoutExpired:
                    if cancel_token is not None and cancel_token.cancelled:
                        cancelled = True
                        break

            if timed_out or cancelled:
                _terminate_tree(proc)
                stdout, stderr = _drain(proc)
                duration_ms = int((time.monotonic() - start) * 1000)
                if timed_out:
                    logger.info(f"Killed {argv[0]} after {timeout_ms} ms (time limit)")
                    message = f"Time Limit Exceeded: timed out after {timeout_ms} ms"
                else:
                    logger.info(f"Killed {argv[0]} on cancellation")
                    message = "Execution cancelled"
                return ProcessOutcome(
                    exit_succeeded=False,
                    stdout=stdout or "",
                    stderr="\n".join(part for part in ((stderr or "").strip(), message) if part),
                    exit_code=proc.returncode,
                    timed_out=timed_out,
                    cancelled=cancelled,
                    duration_ms=duration_ms,
                )

            return ProcessOutcome(
                exit_succeeded=proc.returncode == 0,
                stdout=stdout or "",
                stderr=stderr or "",
                exit_code=proc.returncode,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        finally:
            _execution_semaphore.release()


# Singleton instance
process_runner = ProcessRunner()
