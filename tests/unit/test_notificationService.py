"""
Unit tests for the notification dispatch helpers and payload schemas.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from casematch.models.notification import NotificationPreference, NotificationType
from casematch.schemas.notification import (
    BidSelectionReminderPayload,
    NewCasePayload,
    PointsLowPayload,
)
from casematch.services import notificationService
from casematch.services.dedupGuard import case_alert_dedup_key
from casematch.services.notificationService import (
    _case_id_from_payload,
    _should_push,
    notify,
    notify_new_case_available,
)


def _prefs(**overrides) -> NotificationPreference:
    prefs = MagicMock(spec=NotificationPreference)
    prefs.push_enabled = True
    prefs.push_new_cases = True
    prefs.push_new_bids = True
    prefs.push_points_subscription = True
    for key, value in overrides.items():
        setattr(prefs, key, value)
    return prefs


class TestShouldPush:

    def test_no_preferences_means_push(self):
        assert _should_push(None, NotificationType.NEW_CASE_AVAILABLE) is True

    def test_master_switch_off(self):
        prefs = _prefs(push_enabled=False)
        for notification_type in NotificationType:
            assert _should_push(prefs, notification_type) is False

    @pytest.mark.parametrize(
        "notification_type",
        [NotificationType.NEW_CASE_AVAILABLE, NotificationType.JOB_INCOMING, NotificationType.CASE_ASSIGNED],
    )
    def test_case_alerts_follow_new_cases_toggle(self, notification_type):
        assert _should_push(_prefs(push_new_cases=False), notification_type) is False

    def test_bid_reminder_follows_new_bids_toggle(self):
        prefs = _prefs(push_new_bids=False)
        assert _should_push(prefs, NotificationType.BID_SELECTION_REMINDER) is False
        assert _should_push(prefs, NotificationType.NEW_CASE_AVAILABLE) is True

    def test_points_warning_follows_points_toggle(self):
        prefs = _prefs(push_points_subscription=False)
        assert _should_push(prefs, NotificationType.POINTS_LOW_WARNING) is False

    def test_system_notifications_always_push(self):
        assert _should_push(_prefs(push_new_cases=False), NotificationType.SYSTEM) is True


class TestCaseIdFromPayload:

    def test_string_case_id(self):
        case_id = uuid.uuid4()
        assert _case_id_from_payload({"caseId": str(case_id)}) == case_id

    def test_uuid_case_id(self):
        case_id = uuid.uuid4()
        assert _case_id_from_payload({"caseId": case_id}) == case_id

    def test_missing_case_id(self):
        assert _case_id_from_payload({"pointsBalance": 10}) is None
        assert _case_id_from_payload(None) is None


class TestPayloadSchemas:

    def test_new_case_payload_is_camel_case(self):
        case_id = uuid.uuid4()
        data = NewCasePayload(
            case_id=case_id,
            category="plumber",
            location="Plateau",
            budget=float(Decimal("150.00")),
            priority="urgent",
        ).to_data()

        assert data == {
            "caseId": str(case_id),
            "category": "plumber",
            "location": "Plateau",
            "budget": 150.0,
            "priority": "urgent",
        }

    def test_optional_fields_omitted(self):
        data = NewCasePayload(case_id=uuid.uuid4(), category="plumber", location="").to_data()
        assert "budget" not in data
        assert "priority" not in data

    def test_bid_reminder_payload(self):
        case_id = uuid.uuid4()
        data = BidSelectionReminderPayload(case_id=case_id, bid_count=3).to_data()
        assert data == {"caseId": str(case_id), "bidCount": 3}

    def test_points_payload(self):
        data = PointsLowPayload(points_balance=12, threshold=50).to_data()
        assert data == {"pointsBalance": 12, "threshold": 50, "action": "top_up"}


def test_case_alert_dedup_key_is_shared_per_case():
    case_id = uuid.uuid4()
    assert case_alert_dedup_key(case_id) == f"case_alert:{case_id}"
    assert case_alert_dedup_key(case_id) != case_alert_dedup_key(uuid.uuid4())


class TestNewCaseAlertIsolation:

    @pytest.mark.asyncio
    async def test_each_recipient_gets_its_own_savepoint(self, mock_db, sample_case, reference_now):
        broken, healthy = uuid.uuid4(), uuid.uuid4()
        sent_id = uuid.uuid4()

        async def fake_notify(db, user_id, *args, **kwargs):
            if user_id == broken:
                raise RuntimeError("insert failed")
            return sent_id

        with patch.object(notificationService, "notify", new=AsyncMock(side_effect=fake_notify)):
            notified = await notify_new_case_available(
                mock_db, sample_case, [broken, healthy], now=reference_now,
            )

        assert notified == [healthy]
        assert mock_db.begin_nested.call_count == 2

    @pytest.mark.asyncio
    async def test_duplicate_alert_is_not_reported(self, mock_db, sample_case, reference_now):
        with patch.object(notificationService, "notify", new=AsyncMock(return_value=None)):
            notified = await notify_new_case_available(
                mock_db, sample_case, [uuid.uuid4()], now=reference_now,
            )

        assert notified == []


class TestKeyedInsertFallback:
    """Backends without ``ON CONFLICT`` look the key up before inserting."""

    def _on_dialect(self, mock_db, name):
        mock_db.get_bind = MagicMock()
        mock_db.get_bind.return_value.dialect.name = name

    @pytest.mark.asyncio
    async def test_inserts_when_key_is_new(self, mock_db, result_factory, reference_now):
        self._on_dialect(mock_db, "mssql")
        mock_db.execute.side_effect = [
            result_factory(scalar=None),  # preferences
            result_factory(scalar=None),  # existing key
            result_factory(),  # insert
        ]

        created = await notify(
            mock_db, uuid.uuid4(), NotificationType.NEW_CASE_AVAILABLE,
            "New request", "A request nearby", {"caseId": str(uuid.uuid4())},
            dedup_key="case_alert:x", now=reference_now,
        )

        assert isinstance(created, uuid.UUID)
        assert mock_db.execute.await_count == 3

    @pytest.mark.asyncio
    async def test_skips_when_key_exists(self, mock_db, result_factory, reference_now):
        self._on_dialect(mock_db, "mssql")
        mock_db.execute.side_effect = [
            result_factory(scalar=None),
            result_factory(scalar=uuid.uuid4()),
        ]

        created = await notify(
            mock_db, uuid.uuid4(), NotificationType.NEW_CASE_AVAILABLE,
            "New request", "A request nearby", {"caseId": str(uuid.uuid4())},
            dedup_key="case_alert:x", now=reference_now,
        )

        assert created is None
        assert mock_db.execute.await_count == 2
