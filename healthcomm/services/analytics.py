# healthcomm/services/analytics.py
from collections import Counter
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..models import CommunicationStatus, CommunicationType


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _channel_stats(communications, comm_type: CommunicationType) -> schemas.ChannelStats:
    of_type = [c for c in communications if c.type == comm_type]
    return schemas.ChannelStats(
        total=len(of_type),
        delivered=sum(1 for c in of_type if c.status == CommunicationStatus.DELIVERED),
        failed=sum(1 for c in of_type if c.status == CommunicationStatus.FAILED),
        pending=sum(1 for c in of_type if c.status == CommunicationStatus.PENDING),
    )


def _success_rate(stats: schemas.ChannelStats) -> float:
    if not stats.total:
        return 0.0
    return round(stats.delivered / stats.total * 100, 1)


def communication_analytics(db: Session, days: int = 30, now: datetime = None) -> schemas.AnalyticsResponse:
    now = now or datetime.now(timezone.utc)
    start = now - timedelta(days=days)

    communications = (
        db.query(models.Communication)
        .options(joinedload(models.Communication.patient))
        .filter(models.Communication.created_at >= start)
        .all()
    )

    sms = _channel_stats(communications, CommunicationType.SMS)
    voice = _channel_stats(communications, CommunicationType.VOICE)

    per_day = {}
    for communication in communications:
        day = _as_utc(communication.created_at).date().isoformat()
        per_day.setdefault(day, Counter())[communication.type] += 1

    daily_stats = []
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date().isoformat()
        counts = per_day.get(day, Counter())
        daily_stats.append(schemas.DailyStat(
            date=day,
            sms=counts[CommunicationType.SMS],
            voice=counts[CommunicationType.VOICE],
            total=sum(counts.values()),
        ))

    by_patient = Counter(c.patient.full_name for c in communications)
    top_patients = [schemas.TopPatient(name=name, count=count) for name, count in by_patient.most_common(10)]

    failures = sorted(
        (c for c in communications if c.status == CommunicationStatus.FAILED),
        key=lambda c: _as_utc(c.created_at),
        reverse=True,
    )[:10]
    recent_failures = [
        schemas.RecentFailure(
            id=c.id,
            type=c.type,
            patient=c.patient.full_name,
            phone_number=c.phone_number,
            error_message=c.error_message,
            failed_at=c.failed_at,
        )
        for c in failures
    ]

    return schemas.AnalyticsResponse(
        stats=schemas.CommunicationStats(total_communications=len(communications), sms=sms, voice=voice),
        success_rates=schemas.SuccessRates(sms=_success_rate(sms), voice=_success_rate(voice)),
        daily_stats=daily_stats,
        top_patients=top_patients,
        recent_failures=recent_failures,
        date_range=schemas.DateRange(start=start, to=now, days=days),
    )
