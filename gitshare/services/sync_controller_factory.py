"""Factory for opening a working copy and creating its SyncController."""

import logging
from pathlib import Path

from ..config.settings import Settings
from ..protocols import GitCommandProtocol
from ..schemas import SessionState, User
from .git_command import GitCommand
from .sync_controller import SyncController

logger = logging.getLogger(__name__)

# Present when the repository content is encrypted at rest
PASSWORD_FILE = "password"


def open_session(git: GitCommandProtocol, remote_url: str, user: User) -> SessionState:
    """
    Prepare a working copy for syncing and describe it.

    Sets the remote URL and commit identity once, so later operations don't
    have to track whether that already happened.

    Args:
        git: Command runner for the working copy
        remote_url: URL changes are pushed to and fetched from
        user: Identity used for commits

    Returns:
        SessionState for the working copy
    """
    git.invoke("config", "core.ignorecase", "false")
    if remote_url:
        git.invoke("config", "remote.origin.url", remote_url)
    git.invoke("config", "user.name", user.name)
    git.invoke("config", "user.email", user.email)

    encrypted = (git.working_dir / ".git" / PASSWORD_FILE).exists()
    if encrypted:
        logger.info("%s | Repository is encrypted", git.working_dir.name)

    return SessionState(user=user, remote_url=remote_url, encrypted=encrypted)


def create_sync_controller(
    local_path: str,
    remote_url: str,
    user_name: str,
    user_email: str,
    **options,
) -> SyncController:
    """
    Create a SyncController for an existing working copy.

    Args:
        local_path: Working copy directory
        remote_url: Repository URL
        user_name: Commit author name
        user_email: Commit author email
        **options: Passed on to SyncController

    Returns:
        SyncController ready to sync
    """
    git = GitCommand(Path(local_path))
    session = open_session(git, remote_url, User(name=user_name, email=user_email))
    return SyncController(git, session, **options)


def create_sync_controller_from_settings(settings: Settings) -> SyncController:
    """
    Create a SyncController using application settings.

    Args:
        settings: Application settings

    Returns:
        SyncController for the configured working copy
    """
    return create_sync_controller(
        local_path=settings.REPOSITORY_PATH,
        remote_url=settings.REMOTE_URL,
        user_name=settings.USER_NAME,
        user_email=settings.USER_EMAIL,
        history_window=settings.HISTORY_WINDOW,
        history_fallback_limit=settings.HISTORY_FALLBACK_LIMIT,
        max_changes=settings.MAX_CHANGES_PER_COMMIT,
        conflict_retry_limit=settings.CONFLICT_RETRY_LIMIT,
    )
