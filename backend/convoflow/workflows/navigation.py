# backend/convoflow/workflows/navigation.py

import logging
from typing import List, Optional

from convoflow.models.session import NavigationFrame

logger = logging.getLogger(__name__)


class NavigationStack:
    """
    Bounded back-stack of NavigationFrames for one session.

    Once `max_depth` is exceeded the oldest frames are evicted first. Pushing
    and popping are the only mutations, apart from wholesale clearing when a
    workflow ends.
    """

    def __init__(self, frames: Optional[List[NavigationFrame]] = None, max_depth: int = 50):
        self.max_depth = max_depth
        self._frames: List[NavigationFrame] = list(frames or [])
        self._evict()

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, frame: NavigationFrame) -> None:
        self._frames.append(frame)
        self._evict()

    def peek(self) -> Optional[NavigationFrame]:
        return self._frames[-1] if self._frames else None

    def pop(self) -> Optional[NavigationFrame]:
        return self._frames.pop() if self._frames else None

    def clear(self) -> None:
        self._frames = []

    def discard_workflow(self, workflow_id: str) -> None:
        """Drop the frames belonging to one workflow, e.g. after a restart."""
        self._frames = [f for f in self._frames if f.workflow_id != workflow_id]

    def to_list(self) -> List[NavigationFrame]:
        return list(self._frames)

    def _evict(self) -> None:
        overflow = len(self._frames) - self.max_depth
        if overflow > 0:
            logger.debug(f"Navigation stack full, evicting {overflow} oldest frame(s)")
            del self._frames[:overflow]
