# tests/test_analytics.py
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from healthcomm import models
from healthcomm.main import app
from healthcomm.services.analytics import communication_analytics

from conftest import make_patient

NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)


def _add(db, patient, comm_type, status, created_at, error=None):
    communication = models.Communication(
        patient_id=patient.id,
        type=comm_type,
        content="Reminder",
        phone_number=patient.phone_number,
        status=status,
        error_message=error,
        created_at=created_at,
    )
    db.add(communication)
    db.commit()
    return communication


def test_communication_analytics(db, patient):
    sam = make_patient(db, first_name="Sam", phone_number="+15550000001")
    sms, voice = models.CommunicationType.SMS, models.CommunicationType.VOICE
    delivered, failed, pending = (
        models.CommunicationStatus.DELIVERED, models.CommunicationStatus.FAILED, models.CommunicationStatus.PENDING,
    )
    _add(db, patient, sms, delivered, NOW - timedelta(days=1))
    _add(db, patient, sms, delivered, NOW - timedelta(days=1))
    _add(db, patient, sms, failed, NOW - timedelta(hours=2), error="Carrier rejected")
    _add(db, sam, voice, pending, NOW - timedelta(hours=1))
    # Outside the window
    _add(db, sam, voice, delivered, NOW - timedelta(days=45))

    report = communication_analytics(db, days=7, now=NOW)

    assert report.stats.total_communications == 4
    assert report.stats.sms.total == 3
    assert report.stats.sms.delivered == 2
    assert report.stats.sms.failed == 1
    assert report.stats.voice.pending == 1
    assert report.success_rates.sms == 66.7
    assert report.success_rates.voice == 0.0

    assert len(report.daily_stats) == 7
    assert report.daily_stats[-1].date == "2025-06-30"
    assert report.daily_stats[-1].total == 2
    assert report.daily_stats[-2].sms == 2

    assert report.top_patients[0].name == "Jane Doe"
    assert report.top_patients[0].count == 3
    assert [f.error_message for f in report.recent_failures] == ["Carrier rejected"]
    assert report.date_range.days == 7


def test_analytics_endpoint(user_client, db, patient):
    _add(db, patient, models.CommunicationType.SMS, models.CommunicationStatus.DELIVERED, datetime.now(timezone.utc))
    response = user_client.get("/api/analytics", params={"days": 7})
    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["totalCommunications"] == 1
    assert body["successRates"]["sms"] == 100.0
    assert len(body["dailyStats"]) == 7
    assert body["dateRange"]["days"] == 7
    assert "from" in body["dateRange"]


def test_analytics_days_out_of_range(user_client):
    assert user_client.get("/api/analytics", params={"days": 0}).status_code == 400


def test_health_check(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["message"] == "HealthComm API is running"


@pytest.mark.asyncio
async def test_health_check_async(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        response = await async_client.get("/api/health")
        protected = await async_client.get("/api/analytics")
    assert response.status_code == 200
    assert protected.status_code == 401
