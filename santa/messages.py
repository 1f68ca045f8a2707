from html import escape
from typing import TYPE_CHECKING, Optional

from .models import GiftCard, PICKUP_CHANNELS

if TYPE_CHECKING:
    from .exchange import ExchangeSummary

HELP_TEXT = (
    "<b>Тайный Санта</b> 🎁\n\n"
    "• /profile – заполнить анкету: кому подарок и куда доставить (только в ЛС)\n"
    "• /send_present – отправить получателю QR-код для получения подарка (только в ЛС)\n"
    "• /start_santa – провести жеребьёвку и разослать пары (только администратор)\n"
    "• /cancel – прервать заполнение\n"
)


def render_assignment(card: GiftCard) -> str:
    rows = [
        "🎅 <b>Тайный Санта!</b>",
        "",
        f"Вы дарите подарок <b>{escape(card.recipient)}</b>!",
        "",
        "📦 <b>Информация о подарке:</b>",
    ]
    for key, human in PICKUP_CHANNELS.items():
        rows.append(f"- <b>{human}</b>: {escape(card.pickup.get(key, '—'))}")
    rows.append(f"- <b>Дополнительно</b>: {escape(card.note or '—')}")
    rows += ["", "🤫 Не выдавайте себя!"]
    return "\n".join(rows)


def render_present(note: Optional[str]) -> str:
    text = "🎁 <b>Вам пришёл подарок от Тайного Санты!</b>"
    note = (note or "").strip()
    if note:
        text += f"\n\n📝 {escape(note)}"
    return text


def render_summary(summary: "ExchangeSummary") -> str:
    """Operator report for a finished exchange."""
    lines = [
        f"✅ Тайный Санта запущен! Участников: {summary.total}.",
        f"Сообщений доставлено: {len(summary.delivered)}/{summary.total}.",
    ]
    if summary.unreachable:
        lines.append(f"⚠️ Не удалось отправить ЛС {len(summary.unreachable)} участникам (закрыты ЛС): "
                     + ", ".join(summary.unreachable))
    if summary.transport_failed:
        lines.append(f"❌ Ошибка отправки у {len(summary.transport_failed)} участников: "
                     + ", ".join(summary.transport_failed))
    if summary.skipped:
        lines.append("❔ Пропущено (нет анкеты получателя): " + ", ".join(summary.skipped))
    return "\n".join(lines)
