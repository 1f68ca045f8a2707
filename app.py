# app.py — Secret Santa Bot
# Python 3.11+ / Aiogram 3.7+

import asyncio
import contextlib
import logging
from typing import Optional

from aiogram import Bot, Dispatcher, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ChatType, ParseMode
from aiogram.filters import Command, CommandStart, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import BotCommand, Message

from santa.config import Settings, load_settings
from santa.db import make_engine, make_sessionmaker, init_db, acquire_runtime_lock, release_runtime_lock
from santa.errors import (
    ExchangeInProgress,
    InsufficientParticipants,
    NotEligible,
    PermissionDenied,
    StoreError,
)
from santa.exchange import Exchange
from santa.gateway import DeliveryStatus, TelegramGateway
from santa.messages import HELP_TEXT, render_summary
from santa.models import GiftProfile
from santa.store import SqlProfileStore

logger = logging.getLogger("santa.app")

SKIP = "-"

COMMANDS = [
    BotCommand(command="profile", description="Анкета: кому подарок и куда доставить (только в ЛС)"),
    BotCommand(command="send_present", description="Отправить QR-код получателю (только в ЛС)"),
    BotCommand(command="start_santa", description="Запустить Тайного Санту (только админ)"),
    BotCommand(command="cancel", description="Отменить ввод"),
    BotCommand(command="help", description="Помощь"),
]

router = Router()
private = F.chat.type == ChatType.PRIVATE
# команды посреди анкеты не считаются ответом
form_text = F.text & ~F.text.startswith("/")

class ProfileForm(StatesGroup):
    recipient = State()
    ozon = State()
    wb = State()
    ym = State()
    note = State()

class SendPresent(StatesGroup):
    photo = State()

def optional_field(text: Optional[str]) -> Optional[str]:
    text = (text or "").strip()
    if not text or text == SKIP:
        return None
    return text

# ============================================================
# Handlers
# ============================================================
@router.message(CommandStart())
@router.message(Command("help"))
async def on_help(m: Message):
    await m.answer(HELP_TEXT)

@router.message(StateFilter("*"), Command("cancel"))
async def on_cancel(m: Message, state: FSMContext):
    await state.clear()
    await m.answer("Отменено.")

@router.message(Command("profile", "send_present"), ~private)
async def private_only(m: Message):
    await m.reply("❌ Эта команда доступна <b>только в личных сообщениях</b>.")

# Жеребьёвка
@router.message(Command("start_santa"))
async def on_start_santa(m: Message, exchange: Exchange):
    if str(m.from_user.id) != exchange.operator_id:
        await m.answer("🔒 Эта команда доступна только администратору.")
        return
    # отвечаем сразу: рассылка может занять время
    await m.answer("⏳ Провожу жеребьёвку и рассылаю пары…")
    try:
        summary = await exchange.run(str(m.from_user.id))
    except PermissionDenied:
        await m.answer("🔒 Эта команда доступна только администратору.")
        return
    except InsufficientParticipants:
        await m.answer("❌ Нужно минимум 2 участника!")
        return
    except ExchangeInProgress:
        await m.answer("⏳ Жеребьёвка уже идёт, дождитесь окончания.")
        return
    except StoreError:
        await m.answer("❌ Не удалось сохранить распределение. Рассылка не проводилась.")
        return
    await m.answer(render_summary(summary))

# Анкета
@router.message(Command("profile"), private)
async def on_profile(m: Message, state: FSMContext):
    await state.clear()
    await state.set_state(ProfileForm.recipient)
    await m.answer("Кому предназначен подарок? Напиши имя и фамилию.")

@router.message(ProfileForm.recipient, form_text)
async def profile_recipient(m: Message, state: FSMContext):
    recipient = optional_field(m.text)
    if not recipient:
        await m.answer("Имя получателя обязательно. Кому предназначен подарок?")
        return
    await state.update_data(recipient=recipient)
    await state.set_state(ProfileForm.ozon)
    await m.answer(f"Адрес ПВЗ Ozon (или «{SKIP}», если не нужно):")

@router.message(ProfileForm.ozon, form_text)
async def profile_ozon(m: Message, state: FSMContext):
    await state.update_data(ozon=optional_field(m.text))
    await state.set_state(ProfileForm.wb)
    await m.answer(f"Адрес ПВЗ Wildberries (или «{SKIP}»):")

@router.message(ProfileForm.wb, form_text)
async def profile_wb(m: Message, state: FSMContext):
    await state.update_data(wb=optional_field(m.text))
    await state.set_state(ProfileForm.ym)
    await m.answer(f"Адрес ПВЗ Яндекс.Маркет (или «{SKIP}»):")

@router.message(ProfileForm.ym, form_text)
async def profile_ym(m: Message, state: FSMContext):
    await state.update_data(ym=optional_field(m.text))
    await state.set_state(ProfileForm.note)
    await m.answer(f"Что-нибудь ещё для Санты? (или «{SKIP}»)")

@router.message(ProfileForm.note, form_text)
async def profile_note(m: Message, state: FSMContext, exchange: Exchange):
    data = await state.get_data()
    await state.clear()
    profile = GiftProfile.submit(
        str(m.from_user.id),
        data["recipient"],
        ozon=data.get("ozon"),
        wb=data.get("wb"),
        ym=data.get("ym"),
        note=optional_field(m.text),
    )
    try:
        await exchange.submit_profile(profile)
    except StoreError:
        await m.answer("❌ Не удалось сохранить анкету. Попробуйте позже.")
        return
    await m.answer("✅ Данные о подарках сохранены!")

# QR-код получателю
@router.message(Command("send_present"), private)
async def on_send_present(m: Message, state: FSMContext):
    await state.set_state(SendPresent.photo)
    await m.answer("Пришли QR-код фотографией. Подпись к фото получатель тоже увидит.")

@router.message(SendPresent.photo, F.photo)
async def send_present_photo(m: Message, state: FSMContext, exchange: Exchange):
    await state.clear()
    try:
        status = await exchange.forward(str(m.from_user.id), m.photo[-1].file_id, m.caption)
    except NotEligible:
        await m.answer("❌ Вы не участвуете в Тайном Санте или распределение ещё не запущено.")
        return
    except StoreError:
        await m.answer("❌ Произошла ошибка при отправке. Попробуйте позже.")
        return
    if status is DeliveryStatus.DELIVERED:
        await m.answer("✅ QR-код и сообщение успешно отправлены получателю!")
    elif status is DeliveryStatus.UNREACHABLE:
        await m.answer("❌ Не удалось отправить сообщение получателю — у него закрыты ЛС с ботом.")
    else:
        await m.answer("❌ Произошла ошибка при отправке. Попробуйте позже.")

@router.message(SendPresent.photo)
async def send_present_not_photo(m: Message):
    await m.answer("❌ Пожалуйста, прикрепите изображение (QR-код) как фото.")

# ============================================================
# main
# ============================================================
async def main(settings: Optional[Settings] = None):
    settings = settings or load_settings()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.log_level,
    )

    engine = make_engine(settings.database_url)
    await init_db(engine)
    Session = make_sessionmaker(engine)

    bot = Bot(settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    exchange = Exchange(
        SqlProfileStore(Session),
        TelegramGateway(bot),
        settings.admin_id,
        max_trials=settings.derangement_trials,
    )
    dp = Dispatcher()
    dp.include_router(router)
    dp["exchange"] = exchange

    await bot.set_my_commands(COMMANDS)

    from aiohttp import web

    if settings.webhook_url:
        # WEBHOOK MODE
        from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application

        app = web.Application()
        SimpleRequestHandler(dispatcher=dp, bot=bot).register(app, path="/webhook")
        setup_application(app, dp, bot=bot)
        await bot.set_webhook(settings.webhook_url + "/webhook", drop_pending_updates=True)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host="0.0.0.0", port=settings.port)
        await site.start()
        logger.info("Webhook listening on :%s/webhook", settings.port)

        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            with contextlib.suppress(Exception):
                await runner.cleanup()
            with contextlib.suppress(Exception):
                await bot.session.close()
            await engine.dispose()
    else:
        # POLLING MODE + HEALTH
        info = await bot.get_webhook_info()
        if info.url:
            await bot.delete_webhook(drop_pending_updates=True)

        got = await acquire_runtime_lock(Session, settings.bot_token)
        if not got:
            logger.error("Another instance already holds the polling lock. Exiting.")
            with contextlib.suppress(Exception):
                await bot.session.close()
            await engine.dispose()
            return

        app = web.Application()
        async def _health(_req): return web.Response(text="ok")
        app.router.add_get("/health", _health)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host="0.0.0.0", port=settings.port)
        await site.start()
        logger.info("Polling + health on :%s/health", settings.port)

        try:
            await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
        finally:
            with contextlib.suppress(Exception):
                await release_runtime_lock(Session, settings.bot_token)
            with contextlib.suppress(Exception):
                await runner.cleanup()
            with contextlib.suppress(Exception):
                await bot.session.close()
            await engine.dispose()

# ============================================================
# Entrypoint
# ============================================================
if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
