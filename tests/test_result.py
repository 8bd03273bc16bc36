from chatdesk.services.result import Result


class TestResult:
    def test_success(self):
        result = Result.success("needs_agent")
        assert result.ok is True
        assert result.value == "needs_agent"
        assert result.error is None

    def test_failure(self):
        result = Result.failure("Invalid transition", "invalid_state")
        assert result.ok is False
        assert result.error == "Invalid transition"
        assert result.error_code == "invalid_state"

    def test_unwrap_or(self):
        assert Result.success(3).unwrap_or(0) == 3
        assert Result.failure("nope").unwrap_or(0) == 0
