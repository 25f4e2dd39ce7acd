from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ArtifactKind(str, Enum):
    """
    Per-identity files that make up a player's saved state.

    Each kind lives in its own world subdirectory as `<uuid><extension>`.
    """
    PLAYER_STATE = "playerdata"
    ADVANCEMENTS = "advancements"
    STATS = "stats"

    @property
    def directory(self) -> str:
        return self.value

    @property
    def extension(self) -> str:
        return ".dat" if self is ArtifactKind.PLAYER_STATE else ".json"


@dataclass(frozen=True)
class TextureDescriptor:
    """
    The signed `textures` profile property.

    `signature` is None when the profile service returned the property
    unsigned.
    """
    value: str
    signature: Optional[str] = None
    name: str = "textures"


class RestoreState(str, Enum):
    START = "start"
    RESOLVING = "resolving"
    NOT_FOUND = "not_found"
    RESOLVED = "resolved"
    MIGRATING = "migrating"
    NO_ARTIFACTS = "no_artifacts"
    MIGRATED = "migrated"
    FETCHING_SKIN = "fetching_skin"
    SKIPPED = "skipped"
    DONE = "done"


@dataclass
class RestoreOutcome:
    """
    What happened during one restoration attempt for one cracked identity.

    `states` records every transition in order; `state` is the last one.
    """
    identity: uuid.UUID
    username: Optional[str] = None
    verified: Optional[uuid.UUID] = None
    copied: int = 0
    already_restored: bool = False
    disconnected: bool = False
    skin_cached: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    states: List[RestoreState] = field(default_factory=lambda: [RestoreState.START])

    @property
    def state(self) -> RestoreState:
        return self.states[-1]

    @property
    def ok(self) -> bool:
        return self.error is None

    def advance(self, state: RestoreState) -> None:
        self.states.append(state)

    def as_dict(self) -> dict:
        return {
            "uuid": str(self.identity),
            "username": self.username,
            "verified_uuid": str(self.verified) if self.verified else None,
            "state": self.state.value,
            "copied": self.copied,
            "already_restored": self.already_restored,
            "disconnected": self.disconnected,
            "skin_cached": self.skin_cached,
            "error": self.error,
            "message": self.message,
        }


@dataclass
class SweepReport:
    outcomes: List[RestoreOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[RestoreOutcome]:
        return [o for o in self.outcomes if o.ok and o.state is not RestoreState.SKIPPED]

    @property
    def failed(self) -> List[RestoreOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def skipped(self) -> List[RestoreOutcome]:
        return [o for o in self.outcomes if o.state is RestoreState.SKIPPED]

    def as_dict(self) -> dict:
        return {
            "count": len(self.outcomes),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "outcomes": [o.as_dict() for o in self.outcomes],
        }
