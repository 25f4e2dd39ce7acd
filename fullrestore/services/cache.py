from __future__ import annotations

import threading
import uuid
from typing import Dict, List, Optional, Set

from fullrestore.types import TextureDescriptor


class SkinCache:
    """
    Cracked UUID -> last fetched texture descriptor.

    Process lifetime only, last write wins, never evicted. Safe to use from
    several worker threads at once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._skins: Dict[uuid.UUID, TextureDescriptor] = {}

    def put(self, identity: uuid.UUID, descriptor: TextureDescriptor) -> None:
        with self._lock:
            self._skins[identity] = descriptor

    def get(self, identity: uuid.UUID) -> Optional[TextureDescriptor]:
        with self._lock:
            return self._skins.get(identity)

    def __len__(self) -> int:
        with self._lock:
            return len(self._skins)


class RestorationTracker:
    """
    Cracked UUIDs whose data was already restored during this process.

    Membership is insert-once: nothing is ever removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._restored: Set[uuid.UUID] = set()

    def mark_restored(self, identity: uuid.UUID) -> bool:
        """Returns True only for the caller that inserted the identity."""
        with self._lock:
            if identity in self._restored:
                return False
            self._restored.add(identity)
            return True

    def is_restored(self, identity: uuid.UUID) -> bool:
        with self._lock:
            return identity in self._restored

    def snapshot(self) -> List[uuid.UUID]:
        with self._lock:
            return sorted(self._restored, key=str)
