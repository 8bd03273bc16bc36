from datetime import datetime, timedelta, timezone

from chatdesk.services.conversation_service import find_or_create_conversation
from chatdesk.services.customer_service import upsert_customer
from chatdesk.services.message_service import (
    get_recent_history,
    save_inbound_message,
    save_outbound_message,
)


class TestRecentHistory:
    def _conversation(self, db, make_tenant):
        tenant = make_tenant()
        customer = upsert_customer(db, tenant.id, "94771234567", "Nimal")
        return find_or_create_conversation(db, tenant.id, customer.id, "PNID-1")

    def _stamp(self, message, minutes):
        message.created_at = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc) + timedelta(minutes=minutes)

    def test_only_inbound_turns_are_returned(self, db, make_tenant):
        conversation = self._conversation(db, make_tenant)
        turns = [
            ("in", "Do you have wallets?"),
            ("out", "Yes, we have 3 wallets."),
            ("in", "How much is the brown one?"),
            ("out", "Rs. 2,500"),
            ("in", "Do you deliver?"),
            ("in", "To Kandy?"),
        ]
        for minute, (direction, body) in enumerate(turns):
            if direction == "in":
                message = save_inbound_message(db, conversation, wa_message_id=f"wamid.{minute}", body=body)
            else:
                message = save_outbound_message(db, conversation, body=body, wa_message_id=None)
            self._stamp(message, minute)
        db.flush()

        history = get_recent_history(db, conversation.id, limit=3)

        assert history == [
            {"role": "user", "content": "How much is the brown one?"},
            {"role": "user", "content": "Do you deliver?"},
            {"role": "user", "content": "To Kandy?"},
        ]

    def test_current_message_is_excluded(self, db, make_tenant):
        conversation = self._conversation(db, make_tenant)
        first = save_inbound_message(db, conversation, wa_message_id="wamid.1", body="Hello")
        self._stamp(first, 0)
        current = save_inbound_message(db, conversation, wa_message_id="wamid.2", body="Any shoes?")
        self._stamp(current, 1)
        db.flush()

        history = get_recent_history(db, conversation.id, exclude_id=current.id)

        assert history == [{"role": "user", "content": "Hello"}]
