from datetime import UTC, datetime, timedelta

import pytest

from apin_chat.models import (
    DEFAULT_TITLE,
    EMPTY_PREVIEW,
    GenerationProfile,
    Session,
    Speaker,
    Turn,
)


class TestGenerationProfile:
    def test_temperatures(self):
        assert GenerationProfile.BALANCED.temperature == 0.7
        assert GenerationProfile.CREATIVE.temperature == 1.2
        assert GenerationProfile.PRECISE.temperature == 0.3

    def test_every_profile_has_text(self):
        for profile in GenerationProfile:
            assert profile.label
            assert profile.description
            assert profile.instructions.startswith("You are Apin")

    @pytest.mark.parametrize("value", ["creative", "CREATIVE", " Creative "])
    def test_from_label(self, value):
        assert GenerationProfile.from_label(value) is GenerationProfile.CREATIVE

    def test_from_label_fallback(self):
        fallback = GenerationProfile.from_label("chaotic", GenerationProfile.BALANCED)
        assert fallback is GenerationProfile.BALANCED

    def test_from_label_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown generation profile"):
            GenerationProfile.from_label("chaotic")


class TestTurn:
    def test_constructors(self):
        user = Turn.user("Hi")
        reply = Turn.assistant("Hello")
        pending = Turn.placeholder()

        assert user.speaker is Speaker.USER and user.is_user and not user.pending
        assert reply.speaker is Speaker.ASSISTANT and not reply.pending
        assert pending.speaker is Speaker.ASSISTANT and pending.pending
        assert pending.content == ""

    def test_ids_are_unique(self):
        assert Turn.user("a").id != Turn.user("a").id


class TestSession:
    def test_defaults(self):
        session = Session()

        assert session.title == DEFAULT_TITLE
        assert session.is_empty
        assert session.last_message == EMPTY_PREVIEW
        assert session.updated_at == session.created_at

    def test_updated_at_never_before_created_at(self):
        created = datetime(2026, 1, 2, tzinfo=UTC)
        session = Session(created_at=created, updated_at=created - timedelta(days=1))

        assert session.updated_at == created

    def test_last_message(self):
        session = Session(turns=[Turn.user("Hi"), Turn.assistant("Hello!")])

        assert session.last_message == "Hello!"
        assert not session.is_empty

    def test_replace_turn_keeps_position(self):
        pending = Turn.placeholder()
        session = Session(turns=[Turn.user("Hi"), pending])
        reply = Turn.assistant("Hello!")

        assert session.replace_turn(pending.id, reply)

        assert session.turns[1] is reply
        assert session.pending_turn() is None

    def test_replace_missing_turn(self):
        session = Session(turns=[Turn.user("Hi")])

        assert session.replace_turn("missing", Turn.assistant("x")) is False
        assert len(session.turns) == 1

    def test_pending_turn(self):
        pending = Turn.placeholder()
        session = Session(turns=[Turn.user("Hi"), pending])

        assert session.pending_turn() is pending
        assert session.index_of(pending.id) == 1

    def test_touch_moves_forward(self):
        session = Session(created_at=datetime(2020, 1, 1, tzinfo=UTC))

        session.touch()

        assert session.updated_at > session.created_at

    def test_dict_round_trip(self):
        session = Session(title="Trip", turns=[Turn.user("Hi"), Turn.placeholder()])

        restored = Session.from_dict(session.to_dict())

        assert restored == session

    def test_from_dict_tolerates_naive_timestamps_and_keeps_blank_title(self):
        data = {
            "id": "abc",
            "title": "",
            "created_at": "2026-03-01T10:00:00",
            "turns": [
                {
                    "id": "t1",
                    "content": "Hi",
                    "speaker": "user",
                    "created_at": "2026-03-01T10:00:01",
                }
            ],
        }

        session = Session.from_dict(data)

        assert session.title == ""
        assert session.created_at.tzinfo is not None
        assert session.updated_at == session.created_at
        assert session.turns[0].pending is False

    def test_from_dict_missing_title_uses_default(self):
        data = {"id": "abc", "created_at": "2026-03-01T10:00:00+00:00"}

        assert Session.from_dict(data).title == DEFAULT_TITLE
