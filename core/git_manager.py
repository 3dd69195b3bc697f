# core/git_manager.py
from typing import Mapping, Optional

import git
from loguru import logger

from core.exceptions import ConfigurationError


class GitManager:
    def __init__(self, repo_path: str = "."):
        self.repo_path = str(repo_path)

    def current_branch(self) -> str:
        """
        Name of the checked-out branch in the local repository. A detached HEAD
        is reported as "HEAD", the same as `git rev-parse --abbrev-ref HEAD`.
        """
        try:
            repo = git.Repo(self.repo_path, search_parent_directories=True)
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
            raise ConfigurationError(
                f"Cannot determine branch: {self.repo_path} is not a git repository"
            ) from e

        if repo.head.is_detached:
            return "HEAD"
        return repo.active_branch.name

    def resolve_branch(self, environ: Optional[Mapping[str, str]] = None) -> str:
        """
        CI variables win over the working tree: BRANCH_NAME first, then
        GIT_BRANCH (without its "origin/" prefix), then the local checkout.
        """
        environ = environ if environ is not None else {}

        branch = environ.get("BRANCH_NAME")
        if branch:
            return branch

        branch = environ.get("GIT_BRANCH")
        if branch:
            if branch.startswith("origin/"):
                branch = branch[len("origin/"):]
            return branch

        branch = self.current_branch()
        logger.debug(f"Branch taken from local checkout at {self.repo_path}")
        return branch
