"""
Build executor: runs external build steps under a shared deadline.

Each step is spawned without a shell, in the hermetic environment produced
by gip_builder.environment, with stdout and stderr merged into one build
log. When the pipeline deadline expires the running child and its whole
process group are killed.
"""

import asyncio
import codecs
import logging
import os
import signal
from collections.abc import Sequence
from io import StringIO
from pathlib import Path

from gip_common.errors import BuildStepFailed, BuildTimeout, EntryPointMissing

from .environment import Deadline

logger = logging.getLogger(__name__)

# Relative path that must exist in the source directory before compiling.
ENTRY_POINT = "cmd/main.go"

# Exit code reported when a step's executable cannot be started at all.
EXIT_NOT_STARTED = 127


def format_command(argv: Sequence[str]) -> str:
    return " ".join(str(arg) for arg in argv)


class BuildExecutor:
    """
    Runs build steps for Go projects.

    The steps are `go mod download` followed by
    `go build -o <artifact> ./cmd/main.go`; a non-zero exit from any step
    aborts the remaining ones.
    """

    def __init__(self, go_binary: str = "go", read_size: int = 65536):
        """
        Initialize the executor.

        Args:
            go_binary: Name or path of the Go compiler executable
            read_size: Chunk size used to drain the child's output
        """
        self.go_binary = go_binary
        self.read_size = read_size

    def check_entry_point(self, source_dir: Path) -> None:
        """
        Verify the entry-point file exists before anything is spawned.

        Raises:
            EntryPointMissing: If cmd/main.go is absent
        """
        if not (Path(source_dir) / ENTRY_POINT).is_file():
            raise EntryPointMissing(f"{ENTRY_POINT} not found in the repository")

    def go_steps(self, binary_path: Path) -> list[list[str]]:
        """The build steps producing binary_path."""
        return [
            [self.go_binary, "mod", "download"],
            [self.go_binary, "build", "-o", str(binary_path), f"./{ENTRY_POINT}"],
        ]

    async def compile(
        self,
        source_dir: Path,
        binary_path: Path,
        env: dict[str, str],
        log: StringIO,
        deadline: Deadline,
    ) -> None:
        """
        Compile the project in source_dir into binary_path.

        Raises:
            EntryPointMissing: If cmd/main.go is absent (no process spawned)
            BuildStepFailed: If a step exits with a non-zero code
            BuildTimeout: If the deadline expires
        """
        self.check_entry_point(source_dir)
        await self.run_steps(self.go_steps(binary_path), source_dir, env, log, deadline)

    async def run_steps(
        self,
        steps: Sequence[Sequence[str]],
        cwd: Path,
        env: dict[str, str],
        log: StringIO,
        deadline: Deadline,
    ) -> None:
        """
        Run steps in order, stopping at the first failure.

        Raises:
            BuildStepFailed: If a step exits with a non-zero code
            BuildTimeout: If the deadline expires
        """
        for argv in steps:
            exit_code = await self.run_command(argv, cwd, env, log, deadline)
            if exit_code != 0:
                raise BuildStepFailed(
                    f"{format_command(argv)} failed: exit status {exit_code}",
                    exit_code=exit_code,
                    logs=log.getvalue(),
                )

    async def run_command(
        self,
        argv: Sequence[str],
        cwd: Path,
        env: dict[str, str],
        log: StringIO,
        deadline: Deadline,
    ) -> int:
        """
        Run one command, appending a header and its output to log.

        Args:
            argv: Executable and arguments (no shell involved)
            cwd: Working directory
            env: Complete environment of the child
            log: Build log the output is appended to
            deadline: Shared pipeline deadline

        Returns:
            The exit code, or EXIT_NOT_STARTED if the executable could not be spawned

        Raises:
            BuildTimeout: If the deadline expires before or while the command runs
        """
        command = format_command(argv)
        log.write(f"==> Running: {command} (in {cwd})\n")

        if deadline.expired:
            raise BuildTimeout(
                f"build timed out after {deadline.timeout:g}s before running {command}",
                logs=log.getvalue(),
            )

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                # Own process group, so the whole tree can be killed
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start {command}: {e}")
            log.write(f"Error: failed to start {argv[0]}: {e}\n")
            return EXIT_NOT_STARTED

        # Assert stdout is available (we specified PIPE)
        assert process.stdout is not None

        try:
            await asyncio.wait_for(
                self._drain(process, log), timeout=deadline.remaining()
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            log.write(f"\n==> Deadline exceeded, killed: {command}\n")
            logger.warning(f"Killed {command} (pid {process.pid}) after deadline")
            raise BuildTimeout(
                f"build timed out after {deadline.timeout:g}s while running {command}",
                logs=log.getvalue(),
            )
        except asyncio.CancelledError:
            # Request task was cancelled, don't leave the child behind
            await self._kill(process)
            raise

        logger.debug(f"{command} exited with {process.returncode}")
        return process.returncode

    async def _drain(self, process: asyncio.subprocess.Process, log: StringIO) -> None:
        """Copy the child's merged output into log until it exits."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stdout.read(self.read_size)
            if not chunk:
                break
            log.write(decoder.decode(chunk))
        log.write(decoder.decode(b"", final=True))
        await process.wait()

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill the child's process group and reap it."""
        if process.returncode is None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        await process.wait()
