"""ViewManager: tracks query views, one QuerySession per view."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from flat_viewer.query_session import QuerySession

logger = logging.getLogger(__name__)


@dataclass
class ViewContext:
    """A single query view and its session."""

    view_id: str
    session: QuerySession = field(default_factory=QuerySession)
    created_at: float = field(default_factory=time.time)


class ViewManager:
    """Manages open query views."""

    def __init__(self) -> None:
        self._views: dict[str, ViewContext] = {}

    def create_view(self, view_id: str) -> ViewContext:
        """Register a new view. Raises ValueError if view_id already exists."""
        if view_id in self._views:
            raise ValueError(f"View '{view_id}' already exists.")
        ctx = ViewContext(view_id=view_id)
        self._views[view_id] = ctx
        return ctx

    def get_view(self, view_id: str) -> Optional[ViewContext]:
        """Get a view context by ID, or None if not found."""
        return self._views.get(view_id)

    async def close_view(self, view_id: str) -> None:
        """Dispose the view's engine and stop tracking it. No-op for unknown ids."""
        ctx = self._views.pop(view_id, None)
        if ctx:
            await ctx.session.close()
            logger.info("[ViewManager] Closed view %s", view_id)

    async def close_all(self) -> None:
        for view_id in list(self._views):
            await self.close_view(view_id)


# Module-level singleton
view_manager = ViewManager()
