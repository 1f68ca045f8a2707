import pytest

from santa.models import GiftCard, GiftProfile, NOTE_UNSPECIFIED, PICKUP_NONE


def test_submit_fills_sentinels() -> None:
    p = GiftProfile.submit(42, "  Анна Иванова ", ozon="Ozon, Ленина 1", wb="  ", note=None)
    assert p.participant_id == "42"
    assert p.recipient == "Анна Иванова"
    assert p.pickup == {"ozon": "Ozon, Ленина 1", "wb": PICKUP_NONE, "ym": PICKUP_NONE}
    assert p.note == NOTE_UNSPECIFIED
    assert p.gift_to is None


def test_submit_requires_recipient() -> None:
    with pytest.raises(ValueError):
        GiftProfile.submit("1", "   ")


def test_card_drops_identity_fields() -> None:
    p = GiftProfile.submit("1", "Анна", ym="ЯМ, Мира 3", note="без сладкого")
    p.gift_to = "2"
    assert p.card() == GiftCard(
        recipient="Анна",
        pickup={"ozon": PICKUP_NONE, "wb": PICKUP_NONE, "ym": "ЯМ, Мира 3"},
        note="без сладкого",
    )


def test_card_is_a_copy() -> None:
    p = GiftProfile.submit("1", "Анна")
    p.card().pickup["ozon"] = "changed"
    assert p.pickup["ozon"] == PICKUP_NONE


def test_from_document_tolerates_missing_and_extra_fields() -> None:
    p = GiftProfile.from_document(7, {"recipient": "Борис", "wb": "WB", "legacy": 1, "gift_to": 8})
    assert p.participant_id == "7"
    assert p.pickup == {"ozon": PICKUP_NONE, "wb": "WB", "ym": PICKUP_NONE}
    assert p.note == NOTE_UNSPECIFIED
    assert p.gift_to == "8"


def test_document_shape() -> None:
    p = GiftProfile.submit("1", "Анна", ozon="O", wb="W", ym="Y", note="N")
    p.gift_to = "2"
    assert p.to_document() == {
        "recipient": "Анна", "ozon": "O", "wb": "W", "ym": "Y", "note": "N", "gift_to": "2",
    }
    assert GiftProfile.from_document("1", p.to_document()) == p
