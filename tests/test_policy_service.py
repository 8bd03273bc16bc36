import uuid
from unittest.mock import Mock, patch

from chatdesk.services.policy_service import (
    TenantPolicySnapshot,
    get_tenant_policies,
    invalidate_tenant_policies,
    load_tenant_policies,
)


class TestLoadPolicies:
    def test_loads_row(self, db, make_tenant):
        tenant = make_tenant(
            return_policy="30 days",
            timezone="Asia/Colombo",
            currency="LKR",
            tone="FORMAL",
            ai_enabled=True,
            business_hours={"mon": "9-5"},
        )

        snapshot = load_tenant_policies(db, tenant.id)

        assert snapshot.business_name == "Acme Store"
        assert snapshot.return_policy == "30 days"
        assert snapshot.timezone == "Asia/Colombo"
        assert snapshot.currency == "LKR"
        assert snapshot.tone == "FORMAL"
        assert snapshot.ai_enabled is True
        assert snapshot.business_hours == {"mon": "9-5"}

    def test_defaults_without_row(self, db):
        snapshot = load_tenant_policies(db, uuid.uuid4())
        assert snapshot.default_language == "EN"
        assert snapshot.ai_enabled is False


class TestPolicyCache:
    @patch("chatdesk.services.policy_service._get_cache_client")
    def test_cache_hit_skips_database(self, mock_get_client, db_session):
        cache = Mock()
        cache.get.return_value = '{"tenant_id": "t-1", "business_name": "Cached"}'
        mock_get_client.return_value = cache

        snapshot = get_tenant_policies(db_session, "t-1")

        assert snapshot == TenantPolicySnapshot(tenant_id="t-1", business_name="Cached")
        db_session.query.assert_not_called()

    @patch("chatdesk.services.policy_service._get_cache_client")
    def test_cache_miss_writes_through(self, mock_get_client, db, make_tenant):
        tenant = make_tenant()
        cache = Mock()
        cache.get.return_value = None
        mock_get_client.return_value = cache

        snapshot = get_tenant_policies(db, tenant.id)

        assert snapshot.business_name == "Acme Store"
        key, ttl, _ = cache.setex.call_args.args
        assert key == f"chatdesk:policies:{tenant.id}"
        assert ttl == 60

    @patch("chatdesk.services.policy_service._get_cache_client")
    def test_cache_errors_fall_back_to_database(self, mock_get_client, db, make_tenant):
        tenant = make_tenant()
        cache = Mock()
        cache.get.side_effect = ConnectionError("redis down")
        cache.setex.side_effect = ConnectionError("redis down")
        mock_get_client.return_value = cache

        assert get_tenant_policies(db, tenant.id).business_name == "Acme Store"

    @patch("chatdesk.services.policy_service._get_cache_client")
    def test_invalidate(self, mock_get_client):
        cache = Mock()
        mock_get_client.return_value = cache
        invalidate_tenant_policies("t-1")
        cache.delete.assert_called_once_with("chatdesk:policies:t-1")
