"""Request id slot table for in-flight market data streams."""
from __future__ import annotations

import dataclasses


@dataclasses.dataclass(slots=True)
class RequestIdAllocator:
    """Hands out the lowest free request id and takes ids back on close.

    The server requires every open stream on a connection to carry a unique
    integer id. Instead of a rolling counter we keep a dense table of slots
    so ids stay small and get reused as soon as a stream goes away:

        allocate() -> 0, allocate() -> 1, release(0), allocate() -> 0

    Only ever touched from the session's event loop, so no locking.
    """

    slots: list[bool] = dataclasses.field(default_factory=list)

    def allocate(self) -> int:
        """Claim the lowest free slot, growing the table when all are taken."""
        for idx, used in enumerate(self.slots):
            if not used:
                self.slots[idx] = True
                return idx

        self.slots.append(True)
        return len(self.slots) - 1

    def release(self, rid: int) -> bool:
        """Free `rid` if it is currently claimed.

        Returns False (and changes nothing) for ids that are already free
        or were never handed out.
        """
        if 0 <= rid < len(self.slots) and self.slots[rid]:
            self.slots[rid] = False
            return True

        return False

    def inUse(self, rid: int) -> bool:
        return 0 <= rid < len(self.slots) and self.slots[rid]

    def reset(self) -> None:
        """Forget every claimed id (used when a connection is torn down)."""
        self.slots.clear()

    def __len__(self) -> int:
        return sum(self.slots)
