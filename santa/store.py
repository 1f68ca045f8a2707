"""Participant store.

All profiles live in one JSON document (``presents``) inside the
``documents`` table. Every write loads the document, changes it and
rewrites it whole within a single transaction, so a bulk assignment is
either fully visible or not at all.
"""
import asyncio
import json
import logging
from datetime import datetime, UTC
from typing import Dict, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import Document
from .errors import ParticipantNotFound, StoreError
from .models import GiftProfile

logger = logging.getLogger(__name__)

DOCUMENT_NAME = "presents"


class ProfileStore(Protocol):
    async def upsert(self, profile: GiftProfile) -> None: ...

    async def get(self, participant_id: str) -> Optional[GiftProfile]: ...

    async def get_all(self) -> Dict[str, GiftProfile]: ...

    async def set_assignment(self, participant_id: str, target_id: str) -> None: ...

    async def set_assignments(self, assignments: Mapping[str, str]) -> None: ...


def decode(body: Optional[str]) -> Dict[str, GiftProfile]:
    if not body:
        return {}
    raw = json.loads(body)
    if not isinstance(raw, dict):
        raise ValueError("presents document must be a JSON object")
    return {str(pid): GiftProfile.from_document(pid, doc) for pid, doc in raw.items()}


def encode(profiles: Mapping[str, GiftProfile]) -> str:
    return json.dumps(
        {pid: p.to_document() for pid, p in profiles.items()},
        ensure_ascii=False,
        indent=2,
    )


class SqlProfileStore:
    def __init__(self, Session: async_sessionmaker[AsyncSession], name: str = DOCUMENT_NAME):
        self._Session = Session
        self._name = name
        self._write_lock = asyncio.Lock()

    async def _load(self, s: AsyncSession) -> tuple[Optional[Document], Dict[str, GiftProfile]]:
        row = (await s.execute(select(Document).where(Document.name == self._name))).scalar_one_or_none()
        try:
            return row, decode(row.body if row else None)
        except ValueError as e:  # json.JSONDecodeError тоже ValueError
            raise StoreError(f"Corrupt {self._name} document: {e}") from e

    async def _read(self) -> Dict[str, GiftProfile]:
        try:
            async with self._Session() as s:
                _, profiles = await self._load(s)
                return profiles
        except SQLAlchemyError as e:
            logger.exception("Failed to read %s", self._name)
            raise StoreError(f"Failed to read {self._name}") from e

    async def _rewrite(self, change) -> None:
        """Apply ``change(profiles)`` and persist the whole document."""
        async with self._write_lock:
            try:
                async with self._Session() as s:
                    row, profiles = await self._load(s)
                    change(profiles)
                    body = encode(profiles)
                    if row is None:
                        s.add(Document(name=self._name, body=body, updated_at=datetime.now(UTC)))
                    else:
                        row.body = body
                        row.updated_at = datetime.now(UTC)
                    await s.commit()
            except SQLAlchemyError as e:
                logger.exception("Failed to write %s", self._name)
                raise StoreError(f"Failed to write {self._name}") from e

    async def upsert(self, profile: GiftProfile) -> None:
        def change(profiles: Dict[str, GiftProfile]) -> None:
            profiles[profile.participant_id] = profile

        await self._rewrite(change)

    async def get(self, participant_id: str) -> Optional[GiftProfile]:
        return (await self._read()).get(str(participant_id))

    async def get_all(self) -> Dict[str, GiftProfile]:
        return await self._read()

    async def set_assignment(self, participant_id: str, target_id: str) -> None:
        await self.set_assignments({participant_id: target_id})

    async def set_assignments(self, assignments: Mapping[str, str]) -> None:
        def change(profiles: Dict[str, GiftProfile]) -> None:
            for pid in assignments:
                if pid not in profiles:
                    raise ParticipantNotFound(pid)
            for pid, target in assignments.items():
                profiles[pid].gift_to = target

        await self._rewrite(change)
