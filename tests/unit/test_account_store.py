"""
Unit tests for AccountStore
"""

from datetime import datetime, timedelta

import pytest

from account_service.core.exceptions import InvalidCredentials, NotFound
from account_service.services.device_fingerprint import ClientMetadata
from account_service.services.lockout_policy import CounterState


class TestLookups:

    def test_email_lookup_is_case_insensitive(self, store, account):
        assert store.get_by_email("  Alice@Example.COM ").account_id == account.account_id

    def test_unknown_email(self, store, account):
        assert store.get_by_email("bob@example.com") is None
        assert store.get_by_email("") is None


class TestLock:
    """Test the locked unit of work"""

    def test_unknown_account(self, store):
        with pytest.raises(NotFound):
            with store.lock(999):
                pass

    def test_commits_on_exit(self, store, db_session, account):
        with store.lock(account.account_id) as locked:
            locked.name = "Alice Renamed"

        db_session.expire_all()
        assert store.get(account.account_id).name == "Alice Renamed"

    def test_auth_error_keeps_changes(self, store, db_session, account):
        with pytest.raises(InvalidCredentials):
            with store.lock(account.account_id) as locked:
                store.set_login_counter(locked, CounterState(failed_attempts=3))
                raise InvalidCredentials()

        db_session.expire_all()
        assert store.get(account.account_id).failed_login_attempts == 3

    def test_other_errors_roll_back(self, store, db_session, account):
        with pytest.raises(RuntimeError):
            with store.lock(account.account_id) as locked:
                locked.name = "Half Written"
                raise RuntimeError("boom")

        db_session.expire_all()
        assert store.get(account.account_id).name == "Alice Example"


class TestBoundedCollections:

    def test_login_history_keeps_most_recent(self, store, account, client_metadata):
        start = datetime.utcnow()
        for i in range(25):
            with store.lock(account.account_id) as locked:
                store.append_login_event(locked, client_metadata, i % 2 == 0, start + timedelta(seconds=i))

        assert len(account.login_events) == 20
        assert account.login_events[0].timestamp == start + timedelta(seconds=5)
        assert account.login_events[-1].timestamp == start + timedelta(seconds=24)
        assert account.login_events[-1].device_name == "Firefox on Linux"

    def test_trusted_device_upsert_does_not_duplicate(self, store, account, client_metadata):
        now = datetime.utcnow()
        with store.lock(account.account_id) as locked:
            store.upsert_trusted_device(locked, "f" * 32, client_metadata, now)
        with store.lock(account.account_id) as locked:
            device = store.upsert_trusted_device(locked, "f" * 32, client_metadata, now + timedelta(hours=1))

        assert len(account.trusted_devices) == 1
        assert device.last_used_at == now + timedelta(hours=1)
        assert store.find_active_device(account, "f" * 32) is device
        assert store.find_active_device(account, "e" * 32) is None

    def test_second_factor_config_created_once(self, store, account):
        with store.lock(account.account_id) as locked:
            first = store.second_factor_config(locked)
            second = store.second_factor_config(locked)

        assert first is second
        assert first.enabled is False
        assert account.second_factor_enabled is False

    def test_login_event_for_unknown_client(self, store, account):
        with store.lock(account.account_id) as locked:
            event = store.append_login_event(locked, ClientMetadata(), False, datetime.utcnow(), "invalid_password")

        assert event.device_name == "Unknown on Unknown"
        assert event.location == "Unknown"
