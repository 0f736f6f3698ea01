from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import add_ndvi, create_farm, create_user
from farmsight.core.errors import InsufficientDataError, NotFoundError
from farmsight.db.database import SessionLocal
from farmsight.models.alert import Alert, AlertCooldown
from farmsight.services.alert_service import ALERTED, SUPPRESSED, AlertService
from farmsight.services.cooldown import CooldownStore
from farmsight.services.integrations.notifications import SmsChannel
from farmsight.services.notification_dispatcher import NotificationDispatcher
from farmsight.services.stress.analyzer import StressAssessment, StressDetector
from farmsight.services.stress.classifier import StressLevel

# Newest first
HIGH_STRESS = [0.25, 0.26, 0.27]
SEVERE_STRESS = [0.15, 0.16, 0.17]
HEALTHY = [0.82, 0.80, 0.78]
LOW_STRESS = [0.45, 0.46, 0.47]


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(db_session, channel, clock, sleeps):
    return AlertService(
        db=db_session,
        detector=StressDetector(),
        dispatcher=NotificationDispatcher(channel),
        bulk_delay_seconds=2.0,
        rng=np.random.default_rng(0),
        clock=clock,
        sleep=sleeps.append,
    )


def alert_count(db):
    return db.query(Alert).count()


def test_alert_then_suppressed_within_cooldown(service, db_session, farm, channel, clock):
    add_ndvi(db_session, farm, HIGH_STRESS)

    first = service.analyze_farm(farm.id)
    assert first.state == ALERTED
    assert first.alert_sent
    assert first.alert.stress_level == "high"
    assert first.alert.alert_type == "sms"
    assert len(channel.sent) == 1

    clock.advance(hours=1)
    second = service.analyze_farm(farm.id)
    assert second.state == SUPPRESSED
    assert second.reason == "recently_alerted"
    assert alert_count(db_session) == 1
    assert len(channel.sent) == 1


def test_escalation_breaks_through_cooldown(service, db_session, farm, clock):
    add_ndvi(db_session, farm, HIGH_STRESS)
    assert service.analyze_farm(farm.id).state == ALERTED

    clock.advance(hours=2)
    add_ndvi(db_session, farm, [0.12], latest=date(2024, 7, 9))

    outcome = service.analyze_farm(farm.id)
    assert outcome.state == ALERTED
    assert outcome.assessment.stress_level is StressLevel.SEVERE
    assert alert_count(db_session) == 2


def test_alerts_again_after_window_expires(service, db_session, farm, clock):
    add_ndvi(db_session, farm, HIGH_STRESS)
    assert service.analyze_farm(farm.id).state == ALERTED

    clock.advance(hours=24)
    assert service.analyze_farm(farm.id).state == ALERTED

    cooldown = db_session.get(AlertCooldown, farm.id)
    assert cooldown.version == 2
    assert cooldown.last_alert_at == clock.now


@pytest.mark.parametrize("values", [HEALTHY, LOW_STRESS])
def test_no_alert_for_healthy_or_low_stress(service, db_session, farm, channel, values):
    add_ndvi(db_session, farm, values)

    outcome = service.analyze_farm(farm.id)

    assert outcome.state == SUPPRESSED
    assert outcome.reason == "stress_below_alert_threshold"
    assert alert_count(db_session) == 0
    assert channel.sent == []


def test_low_confidence_is_not_alerted(db_session, farm, channel, clock):
    service = AlertService(
        db=db_session,
        detector=StressDetector(),
        dispatcher=NotificationDispatcher(channel),
        min_confidence=0.85,
        clock=clock,
    )
    add_ndvi(db_session, farm, HIGH_STRESS)

    outcome = service.analyze_farm(farm.id)

    assert outcome.reason == "confidence_below_threshold"
    assert alert_count(db_session) == 0


def test_insufficient_data_raises_without_side_effects(service, db_session, farm, channel):
    add_ndvi(db_session, farm, SEVERE_STRESS[:2])

    with pytest.raises(InsufficientDataError):
        service.analyze_farm(farm.id)

    assert alert_count(db_session) == 0
    assert channel.sent == []
    assert db_session.get(AlertCooldown, farm.id) is None


def test_missing_farm_raises_not_found(service):
    with pytest.raises(NotFoundError):
        service.analyze_farm(999)


def test_inactive_owner_raises_not_found(service, db_session):
    owner = create_user(db_session, "gone@example.com", is_active=False)
    farm = create_farm(db_session, owner)
    add_ndvi(db_session, farm, SEVERE_STRESS)

    with pytest.raises(NotFoundError):
        service.analyze_farm(farm.id)


def test_owner_without_phone_gets_in_app_alert(service, db_session, channel):
    owner = create_user(db_session, "nophone@example.com", phone_number=None)
    farm = create_farm(db_session, owner)
    add_ndvi(db_session, farm, SEVERE_STRESS)

    outcome = service.analyze_farm(farm.id)

    assert outcome.alert.alert_type == "in_app"
    assert outcome.alert.status == "delivered"
    assert outcome.alert.urgency == "critical"
    assert channel.sent == []


def test_analysis_updates_farm_snapshot(service, db_session, farm, clock):
    add_ndvi(db_session, farm, HEALTHY)

    service.analyze_farm(farm.id)
    db_session.refresh(farm)

    assert farm.last_stress_level == "healthy"
    assert farm.last_ndvi == 0.82
    assert farm.last_analyzed_at == clock.now


def test_outcome_serialises_forecast(service, db_session, farm):
    add_ndvi(db_session, farm, HIGH_STRESS)

    payload = service.analyze_farm(farm.id).to_dict()

    assert payload["alert_created"] is True
    assert payload["analysis"]["stress_level"] == "high"
    assert payload["forecast"]["method"] == "linear_regression"
    assert len(payload["forecast"]["forecast"]) == 14


def test_bulk_analysis_continues_past_failures(service, db_session, farmer, sleeps):
    stressed = create_farm(db_session, farmer, name="Stressed")
    sparse = create_farm(db_session, farmer, name="Sparse")
    healthy = create_farm(db_session, farmer, name="Healthy")
    low = create_farm(db_session, farmer, name="Low")
    create_farm(db_session, farmer, name="Retired", is_active=False)

    add_ndvi(db_session, stressed, SEVERE_STRESS)
    add_ndvi(db_session, sparse, [0.3])
    add_ndvi(db_session, healthy, HEALTHY)
    add_ndvi(db_session, low, LOW_STRESS)

    summary = service.analyze_all_farms()

    assert summary["total_farms"] == 4
    assert summary["analyzed"] == 3
    assert summary["failed"] == 1
    assert summary["alerts_created"] == 1
    assert summary["alerts_sent"] == 1
    assert summary["healthy"] == 1
    assert summary["low"] == 1
    assert summary["by_stress_level"]["severe"] == 1
    assert sleeps == [2.0, 2.0, 2.0]

    failed = [r for r in summary["results"] if not r["success"]]
    assert failed[0]["farm_id"] == sparse.id
    assert "Insufficient" in failed[0]["error"]


def test_statistics_and_acknowledge(service, db_session, farm, farmer, clock):
    add_ndvi(db_session, farm, HIGH_STRESS)
    outcome = service.analyze_farm(farm.id)

    stats = service.alert_statistics(days=7, user_id=farmer.id)
    assert stats["total_alerts"] == 1
    assert stats["by_stress_level"] == {"high": 1}
    assert stats["urgency"]["high"] == 1
    assert stats["unacknowledged"] == 1

    alert = service.acknowledge(outcome.alert.id, farmer.id, "Irrigated the east plot")
    assert alert.acknowledged
    assert alert.acknowledged_at == clock.now

    with pytest.raises(NotFoundError):
        service.acknowledge(outcome.alert.id, farmer.id + 100)

    clock.advance(days=10)
    assert service.alert_statistics(days=7)["total_alerts"] == 0
    assert len(service.alert_history(farm.id, days=30)) == 1


def test_cooldown_claim_rejects_stale_version(db_session, farm, clock):
    store = CooldownStore(db_session, timedelta(hours=24))

    assert store.claim(farm.id, StressLevel.HIGH, clock.now, None)
    db_session.commit()

    fresh = store.current(farm.id)
    stale = SimpleNamespace(version=fresh.version)
    assert store.claim(farm.id, StressLevel.SEVERE, clock.now, fresh)
    db_session.commit()

    assert not store.claim(farm.id, StressLevel.SEVERE, clock.now, stale)


def test_cooldown_first_claim_race_loses(db_session, farm, clock):
    store = CooldownStore(db_session, timedelta(hours=24))
    other = SessionLocal()
    other.add(AlertCooldown(farm_id=farm.id, stress_level="high", last_alert_at=clock.now, version=1))
    other.commit()
    other.close()

    # Caller saw no record, but another worker inserted one meanwhile
    assert not store.claim(farm.id, StressLevel.HIGH, clock.now, None)


class ExplodingChannel:
    name = "exploding"

    def send(self, phone_number, message, urgency):
        raise RuntimeError("unexpected gateway reply")


class FixedDetector:
    def __init__(self, assessment):
        self.assessment = assessment

    def detect(self, samples, metadata):
        return self.assessment


def test_bulk_analysis_survives_unexpected_errors(db_session, farmer, clock, sleeps):
    service = AlertService(
        db=db_session,
        detector=StressDetector(),
        dispatcher=NotificationDispatcher(ExplodingChannel()),
        bulk_delay_seconds=0,
        clock=clock,
        sleep=sleeps.append,
    )
    stressed = create_farm(db_session, farmer, name="Stressed")
    healthy = create_farm(db_session, farmer, name="Healthy")
    add_ndvi(db_session, stressed, SEVERE_STRESS)
    add_ndvi(db_session, healthy, HEALTHY)

    summary = service.analyze_all_farms()

    assert summary["analyzed"] == 1
    assert summary["failed"] == 1
    first, second = summary["results"]
    assert first == {"farm_id": stressed.id, "success": False, "error": "unexpected gateway reply"}
    assert second["farm_id"] == healthy.id
    assert second["success"]
    assert second["stress_level"] == "healthy"

    # The half-finished alert and its cooldown claim were rolled back
    assert alert_count(db_session) == 0
    assert db_session.get(AlertCooldown, stressed.id) is None


def test_unstorable_alert_is_not_sent(db_session, farm, channel, clock):
    assessment = StressAssessment(
        stress_level=StressLevel.HIGH,
        confidence=1.5,
        recommendations=["Irrigate"],
        current_ndvi=0.25,
        average_ndvi=0.26,
        trend=-0.01,
        model="llm",
    )
    service = AlertService(
        db=db_session,
        detector=FixedDetector(assessment),
        dispatcher=NotificationDispatcher(channel),
        clock=clock,
    )
    add_ndvi(db_session, farm, HIGH_STRESS)

    with pytest.raises(IntegrityError):
        service.analyze_farm(farm.id)

    assert channel.sent == []
    assert alert_count(db_session) == 0
    assert db_session.get(AlertCooldown, farm.id) is None


def test_failed_commit_logs_delivered_message_id(service, db_session, farm, channel, monkeypatch, caplog):
    add_ndvi(db_session, farm, HIGH_STRESS)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", failing_commit)

    with pytest.raises(OperationalError):
        service.analyze_farm(farm.id)

    message_id = channel.sent[0]["message_id"]
    assert any(message_id in record.getMessage() for record in caplog.records)


@patch("farmsight.services.integrations.notifications.requests.post")
def test_sms_gateway_list_reply_stores_one_alert(mock_post, db_session, farm, clock):
    mock_post.return_value.json.return_value = {"code": "000000", "result": [{"smsMsgId": "x"}]}
    service = AlertService(
        db=db_session,
        detector=StressDetector(),
        dispatcher=NotificationDispatcher(SmsChannel("https://sms.example.com/send", "k", "s")),
        clock=clock,
    )
    add_ndvi(db_session, farm, SEVERE_STRESS)

    outcome = service.analyze_farm(farm.id)

    assert outcome.state == ALERTED
    assert outcome.alert.alert_type == "sms"
    assert outcome.alert.message_id == "x"
    assert mock_post.call_count == 1
    assert alert_count(db_session) == 1
