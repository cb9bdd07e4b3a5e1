from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class SessionRecorder(Protocol):
    """Session replay collaborator. The pipeline only drives its lifecycle."""

    def start(self) -> None: ...
    def stop(self) -> None: ...
    def pause(self) -> None: ...
    def resume(self) -> None: ...
    def is_active(self) -> bool: ...


@dataclass(frozen=True)
class DeliveryStats:
    sent: int
    dropped: int  # retry attempts exhausted
    evicted: int  # pushed out of a full queue
    queued: int
    pending_retries: int
