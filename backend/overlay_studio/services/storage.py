"""
In-memory storage for editing workspaces.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from overlay_studio.config import settings
from overlay_studio.services.workspace import Workspace

logger = logging.getLogger(__name__)


class WorkspaceStore:
    """Keeps live workspaces by id and drops them once they expire."""

    def __init__(self, ttl_hours: Optional[float] = None):
        self.ttl_hours = settings.workspace_ttl_hours if ttl_hours is None else ttl_hours
        self._workspaces: Dict[str, Workspace] = {}

    def __len__(self) -> int:
        return len(self._workspaces)

    def create_workspace(self) -> Workspace:
        """Create a new empty workspace with a unique ID."""
        workspace_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.ttl_hours)

        workspace = Workspace(workspace_id=workspace_id, created_at=now, expires_at=expires_at)
        self._workspaces[workspace_id] = workspace

        logger.info(f"Created workspace {workspace_id}")
        return workspace

    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        """Return a workspace, or None if unknown or expired."""
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            return None
        if datetime.now(timezone.utc) > workspace.expires_at:
            logger.warning(f"Workspace {workspace_id} has expired")
            del self._workspaces[workspace_id]
            return None
        return workspace

    def delete_workspace(self, workspace_id: str) -> bool:
        """Drop a workspace. Returns False if it did not exist."""
        if self._workspaces.pop(workspace_id, None) is None:
            return False
        logger.info(f"Deleted workspace {workspace_id}")
        return True

    def purge_expired(self) -> int:
        """Drop every expired workspace; returns how many were removed."""
        now = datetime.now(timezone.utc)
        expired = [wid for wid, ws in self._workspaces.items() if now > ws.expires_at]
        for workspace_id in expired:
            del self._workspaces[workspace_id]
        if expired:
            logger.info(f"Purged {len(expired)} expired workspaces")
        return len(expired)

    def clear(self) -> None:
        self._workspaces.clear()


# Global service instance
workspace_store = WorkspaceStore()
