"""Commit collaborators and the platform connection."""

from .base import BaseCommitter
from .connection import PlatformConnection, create_session, login
from .rest import RestCommitter, CompositeCommitter
from .bulk import BulkCommitter, BulkJobPoller, JobState
from .dry_run import DryRunCommitter

__all__ = [
    "BaseCommitter",
    "PlatformConnection",
    "create_session",
    "login",
    "RestCommitter",
    "CompositeCommitter",
    "BulkCommitter",
    "BulkJobPoller",
    "JobState",
    "DryRunCommitter",
]
