from types import SimpleNamespace

from chatdesk.services.language_service import (
    Language,
    detect_language,
    extract_keyword_language,
    parse_language,
    resolve_language,
)
from chatdesk.services.policy_service import TenantPolicySnapshot


def _conversation(language=None):
    return SimpleNamespace(id="conv-1", language=language)


def _policies(**kwargs):
    return TenantPolicySnapshot(tenant_id="tenant-1", **kwargs)


class TestDetectLanguage:
    def test_sinhala_at_threshold(self):
        assert detect_language("ආයුබෝවන්") == Language.SI

    def test_tamil_at_threshold(self):
        assert detect_language("வணக்கம்") == Language.TA

    def test_two_script_chars_are_not_enough(self):
        assert detect_language("ok අආ") is None
        assert detect_language("ok அஆ") is None

    def test_three_script_chars_switch(self):
        assert detect_language("ok අආඇ") == Language.SI

    def test_latin_text(self):
        assert detect_language("hello there") is None


class TestKeywords:
    def test_keyword_matches(self):
        assert extract_keyword_language("Tamil please!") == Language.TA
        assert extract_keyword_language("සිංහල") == Language.SI
        assert extract_keyword_language("in english") == Language.EN

    def test_keyword_inside_sentence_does_not_match(self):
        assert extract_keyword_language("do you speak tamil at the store") is None

    def test_parse_language(self):
        assert parse_language("si") == Language.SI
        assert parse_language("fr") is None
        assert parse_language(None) is None


class TestResolveLanguage:
    def test_tenant_default_when_nothing_else(self):
        conversation = _conversation()
        assert resolve_language(conversation, "hello", _policies(default_language="TA")) == Language.TA
        assert conversation.language == "TA"

    def test_sticky_language_wins_over_default(self):
        conversation = _conversation(language="SI")
        assert resolve_language(conversation, "hello", _policies(default_language="EN")) == Language.SI

    def test_detection_overrides_sticky(self):
        conversation = _conversation(language="EN")
        assert resolve_language(conversation, "வணக்கம்", _policies()) == Language.TA
        assert conversation.language == "TA"

    def test_detection_disabled(self):
        conversation = _conversation(language="EN")
        assert resolve_language(conversation, "வணக்கம்", _policies(auto_detect_language=False)) == Language.EN

    def test_keyword_beats_detection(self):
        conversation = _conversation(language="SI")
        assert resolve_language(conversation, "english please", _policies()) == Language.EN

    def test_unknown_default_falls_back_to_english(self):
        conversation = _conversation()
        assert resolve_language(conversation, "hi", _policies(default_language="XX")) == Language.EN
