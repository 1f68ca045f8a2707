from dataclasses import dataclass, field
from typing import Any, Dict, Optional

PICKUP_NONE = "нет"
NOTE_UNSPECIFIED = "не скажу"

# пункты выдачи: ключ в документе -> человеческое имя
PICKUP_CHANNELS: Dict[str, str] = {"ozon": "Ozon", "wb": "Wildberries", "ym": "Яндекс.Маркет"}


def _clean(value: Optional[str], sentinel: str) -> str:
    value = (value or "").strip()
    return value or sentinel


def empty_pickup() -> Dict[str, str]:
    return {key: PICKUP_NONE for key in PICKUP_CHANNELS}


@dataclass(frozen=True)
class GiftCard:
    """What a giver is shown about their recipient."""
    recipient: str
    pickup: Dict[str, str]
    note: str


@dataclass
class GiftProfile:
    participant_id: str
    recipient: str
    pickup: Dict[str, str] = field(default_factory=empty_pickup)
    note: str = NOTE_UNSPECIFIED
    gift_to: Optional[str] = None

    @classmethod
    def submit(
        cls,
        participant_id: str,
        recipient: str,
        *,
        ozon: Optional[str] = None,
        wb: Optional[str] = None,
        ym: Optional[str] = None,
        note: Optional[str] = None,
    ) -> "GiftProfile":
        """Build a fresh profile from raw form input; blanks become sentinels."""
        recipient = (recipient or "").strip()
        if not recipient:
            raise ValueError("recipient is required")
        return cls(
            participant_id=str(participant_id),
            recipient=recipient,
            pickup={
                "ozon": _clean(ozon, PICKUP_NONE),
                "wb": _clean(wb, PICKUP_NONE),
                "ym": _clean(ym, PICKUP_NONE),
            },
            note=_clean(note, NOTE_UNSPECIFIED),
        )

    def card(self) -> GiftCard:
        return GiftCard(recipient=self.recipient, pickup=dict(self.pickup), note=self.note)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"recipient": self.recipient}
        for key in PICKUP_CHANNELS:
            doc[key] = self.pickup.get(key, PICKUP_NONE)
        doc["note"] = self.note
        doc["gift_to"] = self.gift_to
        return doc

    @classmethod
    def from_document(cls, participant_id: str, doc: Dict[str, Any]) -> "GiftProfile":
        gift_to = doc.get("gift_to")
        return cls(
            participant_id=str(participant_id),
            recipient=str(doc.get("recipient") or ""),
            pickup={key: _clean(doc.get(key), PICKUP_NONE) for key in PICKUP_CHANNELS},
            note=_clean(doc.get("note"), NOTE_UNSPECIFIED),
            gift_to=str(gift_to) if gift_to is not None else None,
        )
