"""
Source acquisition: clone a remote repository into an isolated directory.
"""

import logging
import shutil
from io import StringIO
from pathlib import Path

from gip_common.errors import SourceAcquisitionFailed

from .environment import Deadline
from .executor import BuildExecutor

logger = logging.getLogger(__name__)


class SourceAcquirer:
    """
    Checks out a repository with `git clone`.

    The target directory is always cleared first: every build starts from a
    fresh clone instead of updating an existing one.
    """

    def __init__(self, executor: BuildExecutor, git_binary: str = "git"):
        self.executor = executor
        self.git_binary = git_binary

    async def acquire(
        self,
        repo_url: str,
        target_dir: Path,
        ref: str | None,
        env: dict[str, str],
        log: StringIO,
        deadline: Deadline,
    ) -> Path:
        """
        Clone repo_url at ref into target_dir.

        Args:
            repo_url: Remote URL or local path of the repository
            target_dir: Directory to clone into (removed first if present)
            ref: Branch or tag to check out; the remote HEAD when empty
            env: Environment for the git process
            log: Build log the clone output is appended to
            deadline: Shared pipeline deadline

        Returns:
            Absolute path of the checkout

        Raises:
            SourceAcquisitionFailed: On any clone failure (network, auth, ref, disk)
            BuildTimeout: If the deadline expires during the clone
        """
        target = Path(target_dir).resolve()

        try:
            if target.exists():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to clean workspace {target}: {e}")
            raise SourceAcquisitionFailed(
                f"Failed to clean workspace: {e}", logs=log.getvalue()
            ) from e

        argv = [self.git_binary, "clone"]
        if ref:
            argv += ["--branch", ref]
        argv += ["--", repo_url, str(target)]

        # Fail instead of waiting for credentials nobody will type
        clone_env = {**env, "GIT_TERMINAL_PROMPT": "0"}

        exit_code = await self.executor.run_command(
            argv, target.parent, clone_env, log, deadline
        )
        if exit_code != 0:
            logger.warning(f"Clone of {repo_url} failed with exit code {exit_code}")
            raise SourceAcquisitionFailed(
                "Failed to clone repository", logs=log.getvalue()
            )

        return target
