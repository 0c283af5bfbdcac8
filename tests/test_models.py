"""Tests for inboxwatch.models."""

from __future__ import annotations

import pytest
from pydantic import SecretStr, ValidationError

from tests.conftest import _make_message

from inboxwatch.models import Account, AttachmentInfo, Category, LiveUpdateEvent, Message


class TestCategory:
    def test_values(self):
        assert [c.value for c in Category] == [
            "Interested",
            "Meeting Booked",
            "Not Interested",
            "Spam",
            "Out of Office",
        ]

    def test_default(self):
        assert Category.default() == Category.NOT_INTERESTED

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Interested", Category.INTERESTED),
            ("  Meeting Booked\n", Category.MEETING_BOOKED),
            ("interested", None),
            ("Maybe", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, raw, expected):
        assert Category.parse(raw) == expected


class TestAccount:
    def test_frozen(self):
        account = Account(address="a@x.com", password=SecretStr("p"), host="h")
        with pytest.raises(ValidationError):
            account.address = "b@x.com"


class TestMessage:
    def test_make_id(self):
        assert Message.make_id("a@x.com", 42) == "a@x.com_42"

    def test_document_uses_index_field_names(self):
        message = _make_message(category=Category.SPAM)
        message.attachments.append(
            AttachmentInfo(filename="a.pdf", content_type="application/pdf", size=3)
        )
        doc = message.to_document()

        assert doc["email"] == "a@x.com"
        assert doc["from"] == "lead@example.com"
        assert doc["to"] == "a@x.com"
        assert doc["category"] == "Spam"
        assert doc["attachments"] == [
            {"filename": "a.pdf", "contentType": "application/pdf", "size": 3}
        ]
        for key in ("messageId", "inReplyTo", "createdAt", "updatedAt"):
            assert key in doc
        assert doc["date"] == "2025-06-01T12:00:00Z"

    def test_validates_stored_document(self):
        doc = _make_message(uid=5).to_document()
        message = Message.model_validate(doc)
        assert message.uid == 5
        assert message.account == "a@x.com"


class TestLiveUpdateEvent:
    def test_from_message(self):
        event = LiveUpdateEvent.from_message(_make_message(category=Category.INTERESTED))
        assert event.id == "a@x.com_1"
        assert event.sender == "lead@example.com"
        assert event.category == Category.INTERESTED
