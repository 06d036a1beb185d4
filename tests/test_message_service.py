import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from smile_api.errors import PersistenceError
from smile_api.models import Message, MessageRole, User
from smile_api.services.identity_service import resolve_user_id
from smile_api.services.message_service import get_recent_history, save_message


@pytest.fixture
def user_id(db):
    user_id = resolve_user_id(db, "whatsapp", "u1")
    db.commit()
    return user_id


class TestSaveMessage:
    def test_saves_message(self, db, user_id):
        message = save_message(db, user_id, "user", "hello")
        db.commit()

        stored = db.get(Message, message.id)
        assert stored.role == "user"
        assert stored.content == "hello"
        assert stored.user_id == user_id

    def test_accepts_role_enum(self, db, user_id):
        message = save_message(db, user_id, MessageRole.ASSISTANT, "hi")

        assert message.role == "assistant"

    def test_rejects_unknown_role(self, db, user_id):
        with pytest.raises(PersistenceError):
            save_message(db, user_id, "manager", "hello")

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_rejects_empty_content(self, db, user_id, content):
        with pytest.raises(PersistenceError):
            save_message(db, user_id, "user", content)

    def test_rejects_unknown_user(self, db):
        with pytest.raises(PersistenceError):
            save_message(db, uuid.uuid4(), "user", "hello")

    def test_wraps_database_errors(self, db_session):
        db_session.get.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))

        with pytest.raises(PersistenceError):
            save_message(db_session, uuid.uuid4(), "user", "hello")

        db_session.rollback.assert_called_once()

    def test_messages_deleted_with_user(self, db, user_id):
        save_message(db, user_id, "user", "hello")
        save_message(db, user_id, "assistant", "hi")
        db.commit()

        db.delete(db.get(User, user_id))
        db.commit()

        assert db.query(Message).count() == 0


class TestGetRecentHistory:
    def test_returns_all_when_fewer_than_limit(self, db, user_id):
        for text in ["one", "two", "three"]:
            save_message(db, user_id, "user", text)
        db.commit()

        history = get_recent_history(db, user_id, 10)

        assert [turn["content"] for turn in history] == ["one", "two", "three"]

    def test_never_exceeds_limit_and_keeps_newest(self, db, user_id):
        for i in range(15):
            save_message(db, user_id, "user" if i % 2 == 0 else "assistant", f"turn {i}")
        db.commit()

        history = get_recent_history(db, user_id, 4)

        assert len(history) == 4
        assert [turn["content"] for turn in history] == ["turn 11", "turn 12", "turn 13", "turn 14"]

    def test_returns_role_and_content_only(self, db, user_id):
        save_message(db, user_id, "user", "hello")
        save_message(db, user_id, "assistant", "hi there")
        db.commit()

        history = get_recent_history(db, user_id, 10)

        assert history == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi there"},
        ]

    def test_chronological_by_created_at_not_insert_order(self, db, user_id):
        now = datetime.now(timezone.utc)
        db.add(Message(user_id=user_id, role="user", content="later", created_at=now))
        db.add(Message(user_id=user_id, role="user", content="earlier", created_at=now - timedelta(minutes=5)))
        db.commit()

        history = get_recent_history(db, user_id, 10)

        assert [turn["content"] for turn in history] == ["earlier", "later"]

    def test_same_timestamp_falls_back_to_insertion_order(self, db, user_id):
        frozen = datetime(2026, 1, 1, tzinfo=timezone.utc)
        with patch("smile_api.services.message_service.datetime") as mock_datetime:
            mock_datetime.now.return_value = frozen
            for text in ["a", "b", "c"]:
                save_message(db, user_id, "user", text)
        db.commit()

        history = get_recent_history(db, user_id, 2)

        assert [turn["content"] for turn in history] == ["b", "c"]

    def test_only_own_messages(self, db, user_id):
        other_id = resolve_user_id(db, "whatsapp", "u2")
        save_message(db, user_id, "user", "mine")
        save_message(db, other_id, "user", "theirs")
        db.commit()

        history = get_recent_history(db, user_id, 10)

        assert history == [{"role": "user", "content": "mine"}]

    def test_empty_for_new_user(self, db, user_id):
        assert get_recent_history(db, user_id, 10) == []

    @pytest.mark.parametrize("limit", [0, -1, 2.5, True])
    def test_rejects_non_positive_limit(self, db, user_id, limit):
        with pytest.raises(ValueError):
            get_recent_history(db, user_id, limit)
