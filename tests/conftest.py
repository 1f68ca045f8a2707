import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from santa.errors import ParticipantNotFound, StoreError  # noqa: E402
from santa.gateway import DeliveryStatus, Payload  # noqa: E402
from santa.models import GiftProfile  # noqa: E402


class MemoryStore:
    """In-memory ProfileStore; keeps insertion order like the SQL store."""

    def __init__(self) -> None:
        self.profiles: Dict[str, GiftProfile] = {}
        self.fail_writes = False
        self.writes = 0

    def _check(self) -> None:
        if self.fail_writes:
            raise StoreError("disk full")

    async def upsert(self, profile: GiftProfile) -> None:
        self._check()
        self.profiles[profile.participant_id] = profile
        self.writes += 1

    async def get(self, participant_id: str) -> Optional[GiftProfile]:
        return self.profiles.get(participant_id)

    async def get_all(self) -> Dict[str, GiftProfile]:
        return dict(self.profiles)

    async def set_assignment(self, participant_id: str, target_id: str) -> None:
        await self.set_assignments({participant_id: target_id})

    async def set_assignments(self, assignments: Mapping[str, str]) -> None:
        self._check()
        for pid in assignments:
            if pid not in self.profiles:
                raise ParticipantNotFound(pid)
        for pid, target in assignments.items():
            self.profiles[pid].gift_to = target
        self.writes += 1


class FakeGateway:
    def __init__(self, unreachable: Set[str] = frozenset(), failing: Set[str] = frozenset(),
                 crashing: Set[str] = frozenset()) -> None:
        self.unreachable = set(unreachable)
        self.failing = set(failing)
        self.crashing = set(crashing)
        self.calls: List[Tuple[str, Payload]] = []

    async def deliver(self, participant_id: str, payload: Payload) -> DeliveryStatus:
        self.calls.append((participant_id, payload))
        if participant_id in self.crashing:
            raise RuntimeError("boom")
        if participant_id in self.unreachable:
            return DeliveryStatus.UNREACHABLE
        if participant_id in self.failing:
            return DeliveryStatus.FAILED
        return DeliveryStatus.DELIVERED

    def recipients(self) -> List[str]:
        return [pid for pid, _ in self.calls]


def make_profile(pid: str, recipient: Optional[str] = None, **kwargs) -> GiftProfile:
    return GiftProfile.submit(pid, recipient or f"Person {pid}", **kwargs)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
