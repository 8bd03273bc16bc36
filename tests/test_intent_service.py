from unittest.mock import patch

from chatdesk.services.intent_rules import Intent, IntentResult
from chatdesk.services.intent_service import classify_intent, fallback_result, should_handoff
from chatdesk.services.llm.base import LLMError
from chatdesk.services.policy_service import TenantPolicySnapshot
from chatdesk.services.quota_service import QuotaCheck

TENANT_ID = "7d1f4f7e-1111-4c1c-9a55-3e0f2f000001"


def _policies(ai_enabled=True):
    return TenantPolicySnapshot(tenant_id=TENANT_ID, ai_enabled=ai_enabled)


def _allowed():
    return QuotaCheck(allowed=True, used=0, limit=100)


class TestClassifyIntent:
    def test_empty_text_is_other_zero(self, db_session):
        result = classify_intent(db_session, TENANT_ID, "  ", policies=_policies())
        assert result.intent == Intent.OTHER
        assert result.confidence == 0.0

    def test_rule_match_skips_model(self, db_session, fake_llm):
        provider = fake_llm()
        result = classify_intent(db_session, TENANT_ID, "Hello!", policies=_policies(), provider=provider)
        assert result.intent == Intent.GREETING
        assert result.source == "rule"
        assert provider.calls == []

    def test_no_provider_falls_back(self, db_session):
        result = classify_intent(db_session, TENANT_ID, "asdf qwerty", policies=_policies())
        assert result == fallback_result()
        assert result.confidence == 0.1

    def test_ai_disabled_skips_model(self, db_session, fake_llm):
        provider = fake_llm(classification={"intent": "delivery_info", "confidence": 0.9})
        result = classify_intent(
            db_session, TENANT_ID, "Do you ship to Kandy?", policies=_policies(ai_enabled=False), provider=provider
        )
        assert result.intent == Intent.OTHER
        assert provider.calls == []

    @patch("chatdesk.services.intent_service.increment_usage")
    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_quota_exhausted_skips_model(self, mock_quota, mock_increment, db_session, fake_llm):
        mock_quota.return_value = QuotaCheck(allowed=False, used=100, limit=100)
        provider = fake_llm(classification={"intent": "delivery_info", "confidence": 0.9})

        result = classify_intent(db_session, TENANT_ID, "Do you ship to Kandy?", policies=_policies(), provider=provider)

        assert result == fallback_result()
        assert provider.calls == []
        mock_increment.assert_not_called()

    @patch("chatdesk.services.intent_service.increment_usage")
    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_model_result_used_and_counted(self, mock_quota, mock_increment, db_session, fake_llm):
        mock_quota.return_value = _allowed()
        provider = fake_llm(classification={"intent": "delivery_info", "confidence": 0.8})

        result = classify_intent(db_session, TENANT_ID, "Do you ship to Kandy?", policies=_policies(), provider=provider)

        assert result.intent == Intent.DELIVERY_INFO
        assert result.confidence == 0.8
        assert result.source == "model"
        mock_increment.assert_called_once_with(db_session, TENANT_ID, "ai_calls")

    @patch("chatdesk.services.intent_service.increment_usage")
    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_low_confidence_model_result_falls_back(self, mock_quota, mock_increment, db_session, fake_llm):
        mock_quota.return_value = _allowed()
        provider = fake_llm(classification={"intent": "delivery_info", "confidence": 0.3})

        result = classify_intent(db_session, TENANT_ID, "Do you ship to Kandy?", policies=_policies(), provider=provider)

        assert result == fallback_result()
        mock_increment.assert_called_once()

    @patch("chatdesk.services.intent_service.increment_usage")
    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_unknown_label_falls_back(self, mock_quota, mock_increment, db_session, fake_llm):
        mock_quota.return_value = _allowed()
        provider = fake_llm(classification={"intent": "weather", "confidence": 0.9})

        result = classify_intent(db_session, TENANT_ID, "Is it raining?", policies=_policies(), provider=provider)

        assert result == fallback_result()
        mock_increment.assert_called_once()

    @patch("chatdesk.services.intent_service.increment_usage")
    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_model_error_falls_back(self, mock_quota, mock_increment, db_session, fake_llm):
        mock_quota.return_value = _allowed()
        provider = fake_llm(error=LLMError("timeout"))

        result = classify_intent(db_session, TENANT_ID, "Do you ship to Kandy?", policies=_policies(), provider=provider)

        assert result == fallback_result()
        mock_increment.assert_not_called()

    @patch("chatdesk.services.intent_service.check_ai_quota")
    def test_history_is_passed_to_model(self, mock_quota, db_session, fake_llm):
        mock_quota.return_value = _allowed()
        provider = fake_llm(classification={"intent": "other", "confidence": 0.9})
        history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "Hello!"}]

        with patch("chatdesk.services.intent_service.increment_usage"):
            classify_intent(
                db_session, TENANT_ID, "and the blue one?", policies=_policies(), provider=provider, history=history
            )

        messages = provider.calls[0]["messages"]
        assert messages[1] == {"role": "user", "content": "hi"}
        assert messages[-1] == {"role": "user", "content": "and the blue one?"}


class TestShouldHandoff:
    def test_speak_to_human(self):
        assert should_handoff(IntentResult(Intent.SPEAK_TO_HUMAN, 0.95)) is True

    def test_complaint(self):
        assert should_handoff(IntentResult(Intent.COMPLAINT, 0.8)) is True

    def test_low_confidence_other(self):
        assert should_handoff(IntentResult(Intent.OTHER, 0.1)) is True

    def test_confident_other_does_not_hand_off(self):
        assert should_handoff(IntentResult(Intent.OTHER, 0.6)) is False

    def test_greeting(self):
        assert should_handoff(IntentResult(Intent.GREETING, 0.9)) is False
