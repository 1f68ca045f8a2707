"""The draw: assign every participant a recipient and tell them privately.

A run goes ``IDLE -> COLLECTING -> ASSIGNED -> NOTIFYING -> COMPLETED``.
Only the assignment is persisted; the fan-out is not checkpointed, so a
run that dies half-way has to be repeated and will draw new pairs.
"""
import asyncio
import enum
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from .derangement import MAX_TRIALS, derange, pairs
from .errors import (
    ExchangeInProgress,
    InsufficientParticipants,
    NotEligible,
    PermissionDenied,
    StoreError,
)
from .gateway import AttachmentPayload, DeliveryStatus, NotificationGateway, Payload, TextPayload
from .messages import render_assignment, render_present
from .models import GiftProfile
from .store import ProfileStore

logger = logging.getLogger(__name__)


class ExchangePhase(enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    ASSIGNED = "assigned"
    NOTIFYING = "notifying"
    COMPLETED = "completed"


@dataclass
class ExchangeSummary:
    total: int
    delivered: List[str] = field(default_factory=list)
    unreachable: List[str] = field(default_factory=list)
    transport_failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    fallback: bool = False
    _failed: List[str] = field(default_factory=list, init=False, repr=False)

    @property
    def failed(self) -> List[str]:
        """Participants whose notification failed, in delivery order."""
        return list(self._failed)

    def record(self, participant_id: str, status: DeliveryStatus) -> None:
        if status is DeliveryStatus.DELIVERED:
            self.delivered.append(participant_id)
            return
        if status is DeliveryStatus.UNREACHABLE:
            self.unreachable.append(participant_id)
        else:
            self.transport_failed.append(participant_id)
        self._failed.append(participant_id)


class Exchange:
    def __init__(self, store: ProfileStore, gateway: NotificationGateway, operator_id: str, *,
                 max_trials: int = MAX_TRIALS, rng: Optional[random.Random] = None):
        self.store = store
        self.gateway = gateway
        self.operator_id = str(operator_id)
        self.max_trials = max_trials
        self.rng = rng
        self.phase = ExchangePhase.IDLE
        self._run_lock = asyncio.Lock()

    def _enter(self, phase: ExchangePhase) -> None:
        logger.info("Exchange phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def submit_profile(self, profile: GiftProfile) -> None:
        await self.store.upsert(profile)
        logger.info("Saved profile of %s", profile.participant_id)

    async def _deliver(self, participant_id: str, payload: Payload) -> DeliveryStatus:
        try:
            return await self.gateway.deliver(participant_id, payload)
        except Exception:
            logger.exception("Gateway crashed delivering to %s", participant_id)
            return DeliveryStatus.FAILED

    async def run(self, operator_id: str) -> ExchangeSummary:
        if str(operator_id) != self.operator_id:
            logger.warning("Exchange requested by non-operator %s", operator_id)
            raise PermissionDenied("Only the operator can start the exchange")
        if self._run_lock.locked():
            raise ExchangeInProgress("An exchange is already running")

        async with self._run_lock:
            try:
                summary = await self._run()
            except BaseException:
                self.phase = ExchangePhase.IDLE
                raise
        return summary

    async def _run(self) -> ExchangeSummary:
        self._enter(ExchangePhase.COLLECTING)
        profiles = await self.store.get_all()
        ids = list(profiles)
        if len(ids) < 2:
            raise InsufficientParticipants(len(ids))

        result = derange(ids, max_trials=self.max_trials, rng=self.rng)
        if result.fallback:
            logger.warning("No random derangement in %d trials, used rotation", result.trials)
        await self.store.set_assignments(pairs(ids, result))
        self._enter(ExchangePhase.ASSIGNED)

        summary = ExchangeSummary(total=len(ids), fallback=result.fallback)
        self._enter(ExchangePhase.NOTIFYING)
        for giver_id, target_id in zip(ids, result.order):
            try:
                recipient = await self.store.get(target_id)
            except StoreError:
                logger.exception("Could not load recipient %s of %s", target_id, giver_id)
                summary.record(giver_id, DeliveryStatus.FAILED)
                continue
            if recipient is None:
                logger.warning("Recipient %s of %s is gone, skipping", target_id, giver_id)
                summary.skipped.append(giver_id)
                continue
            status = await self._deliver(giver_id, TextPayload(render_assignment(recipient.card())))
            summary.record(giver_id, status)

        self._enter(ExchangePhase.COMPLETED)
        logger.info("Exchange done: %d participants, %d delivered, %d failed, %d skipped",
                    summary.total, len(summary.delivered), len(summary.failed), len(summary.skipped))
        return summary

    async def forward(self, sender_id: str, attachment: str, note: Optional[str] = None) -> DeliveryStatus:
        """Pass an attachment (pickup QR code etc.) on to the sender's recipient."""
        sender = await self.store.get(str(sender_id))
        if sender is None or not sender.gift_to:
            raise NotEligible("Sender has no assignment yet")

        status = await self._deliver(sender.gift_to, AttachmentPayload(render_present(note), attachment))
        logger.info("Forward from %s to %s: %s", sender.participant_id, sender.gift_to, status.value)
        return status
