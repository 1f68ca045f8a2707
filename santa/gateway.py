"""Private delivery to a participant through the Telegram Bot API."""
import enum
import logging
from dataclasses import dataclass
from typing import Protocol, Union

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNetworkError,
)
from aiohttp import ClientError

logger = logging.getLogger(__name__)


class DeliveryStatus(enum.Enum):
    DELIVERED = "delivered"
    UNREACHABLE = "unreachable"
    FAILED = "failed"


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class AttachmentPayload:
    text: str
    attachment: str  # file_id или URL, содержимое не разбираем


Payload = Union[TextPayload, AttachmentPayload]


class NotificationGateway(Protocol):
    async def deliver(self, participant_id: str, payload: Payload) -> DeliveryStatus: ...


def is_unreachable(err: TelegramAPIError) -> bool:
    # Forbidden: бот заблокирован; "chat not found": пользователь не открывал ЛС с ботом
    if isinstance(err, TelegramForbiddenError):
        return True
    return isinstance(err, TelegramBadRequest) and "chat not found" in err.message.lower()


class TelegramGateway:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def _send(self, chat_id: int, payload: Payload) -> None:
        if isinstance(payload, AttachmentPayload):
            await self.bot.send_photo(chat_id, payload.attachment, caption=payload.text, parse_mode=ParseMode.HTML)
        else:
            await self.bot.send_message(chat_id, payload.text, parse_mode=ParseMode.HTML)

    async def deliver(self, participant_id: str, payload: Payload) -> DeliveryStatus:
        try:
            await self._send(int(participant_id), payload)
        except TelegramNetworkError as e:
            logger.warning("Network error delivering to %s: %s", participant_id, e)
            return DeliveryStatus.FAILED
        except TelegramAPIError as e:
            if is_unreachable(e):
                logger.warning("Participant %s is unreachable: %s", participant_id, e.message)
                return DeliveryStatus.UNREACHABLE
            logger.warning("Telegram refused delivery to %s: %s", participant_id, e)
            return DeliveryStatus.FAILED
        except ClientError as e:
            logger.warning("Transport error delivering to %s: %s", participant_id, e)
            return DeliveryStatus.FAILED
        return DeliveryStatus.DELIVERED
