import json

import pytest

from chatdesk.services.webhook_parser import (
    PayloadParseError,
    extract_phone_number_id,
    parse_webhook_payload,
)


class TestParseWebhookPayload:
    def test_text_message(self, wa_payload):
        [message] = parse_webhook_payload(wa_payload("Hello there", message_id="wamid.1"))

        assert message.phone_number_id == "PNID-1"
        assert message.from_wa_id == "94771234567"
        assert message.contact_name == "Alice"
        assert message.wa_message_id == "wamid.1"
        assert message.type == "text"
        assert message.body == "Hello there"
        assert message.interactive is None
        assert message.timestamp.tzinfo is not None

    def test_list_reply_body_is_row_title(self, wa_payload):
        selection = {"type": "list_reply", "list_reply": {"id": "SKU-1", "title": "Red Shoes", "description": "LKR 9,500"}}
        [message] = parse_webhook_payload(wa_payload(interactive=selection))

        assert message.type == "interactive"
        assert message.text is None
        assert message.interactive.type == "list_reply"
        assert message.interactive.id == "SKU-1"
        assert message.body == "Red Shoes"

    def test_button_reply(self, wa_payload):
        selection = {"type": "button_reply", "button_reply": {"id": "yes", "title": "Yes"}}
        [message] = parse_webhook_payload(wa_payload(interactive=selection))
        assert message.interactive.type == "button_reply"
        assert message.body == "Yes"

    def test_accepts_raw_json(self, wa_payload):
        raw = json.dumps(wa_payload("Hi")).encode()
        assert len(parse_webhook_payload(raw)) == 1

    def test_invalid_json_raises(self):
        with pytest.raises(PayloadParseError):
            parse_webhook_payload(b"{not json")

    def test_malformed_shape_raises(self):
        with pytest.raises(PayloadParseError):
            parse_webhook_payload({"object": "whatsapp_business_account", "entry": "nope"})

    def test_other_objects_ignored(self, wa_payload):
        payload = wa_payload("Hi")
        payload["object"] = "page"
        assert parse_webhook_payload(payload) == []

    def test_status_updates_produce_no_messages(self):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA-1",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "metadata": {"phone_number_id": "PNID-1"},
                                "statuses": [{"id": "wamid.out.1", "status": "delivered"}],
                            },
                        }
                    ],
                }
            ],
        }
        assert parse_webhook_payload(payload) == []

    def test_multiple_messages_flattened(self, wa_payload):
        payload = wa_payload("first", message_id="wamid.a")
        second = dict(payload["entry"][0]["changes"][0]["value"]["messages"][0], id="wamid.b")
        second["text"] = {"body": "second"}
        payload["entry"][0]["changes"][0]["value"]["messages"].append(second)

        messages = parse_webhook_payload(payload)

        assert [m.wa_message_id for m in messages] == ["wamid.a", "wamid.b"]

    def test_missing_contact_uses_wa_id(self, wa_payload):
        payload = wa_payload("Hi")
        payload["entry"][0]["changes"][0]["value"]["contacts"] = []
        [message] = parse_webhook_payload(payload)
        assert message.contact_name == "94771234567"

    def test_bad_timestamp_defaults_to_now(self, wa_payload):
        payload = wa_payload("Hi")
        payload["entry"][0]["changes"][0]["value"]["messages"][0]["timestamp"] = "soon"
        [message] = parse_webhook_payload(payload)
        assert message.timestamp.tzinfo is not None


class TestExtractPhoneNumberId:
    def test_found(self, wa_payload):
        raw = json.dumps(wa_payload("Hi", phone_number_id="1234567890")).encode()
        assert extract_phone_number_id(raw) == "1234567890"

    def test_missing(self):
        assert extract_phone_number_id(b'{"object": "whatsapp_business_account"}') is None

    def test_not_json_still_scanned(self):
        assert extract_phone_number_id(b'garbage "phone_number_id": "PN-9" garbage') == "PN-9"
