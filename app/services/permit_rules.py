"""Permit and certificate rules: status, expiry tracking, renewals, statistics.

Like the grievance rules these are plain functions over values and dicts;
`crud` feeds them rows converted with `crud.permit_to_dict`.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.ids import prefixed_id
from app.core.timeutils import as_utc, utcnow

PERMIT_TYPES = {
    "business_license": "Business License",
    "fire_safety": "Fire Safety Certificate",
    "environmental": "Environmental Permit",
    "building": "Building / Occupancy Permit",
    "occupational_health": "Occupational Health Certificate",
    "export_license": "Export License",
    "certificate": "Certificate",
    "other": "Other",
}
PERMIT_STATUSES = ("valid", "expired", "suspended", "revoked")

EXPIRING_WITHIN_DAYS = 30
RECENTLY_EXPIRED_DAYS = 30
STATS_LIST_SIZE = 10

# (days before expiry, reminder type)
REMINDER_OFFSETS = ((90, "notice"), (30, "warning"), (7, "critical"))


def generate_permit_id() -> str:
    return prefixed_id("permit")


def initial_status(expiry_date: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return "expired" if as_utc(expiry_date) < now else "valid"


def days_until(expiry_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until expiry, rounded up; negative once expired."""
    now = now or utcnow()
    return math.ceil((as_utc(expiry_date) - now).total_seconds() / 86400)


def expiry_status(days_until_expiry: int) -> str:
    if days_until_expiry < 0:
        return "expired"
    if days_until_expiry <= 7:
        return "critical"
    if days_until_expiry <= 30:
        return "warning"
    if days_until_expiry <= 90:
        return "notice"
    return "valid"


def expiry_details(expiry_date: datetime, now: Optional[datetime] = None) -> Dict[str, Any]:
    days = days_until(expiry_date, now)
    return {
        "expiry_date": as_utc(expiry_date).isoformat(),
        "days_until_expiry": days,
        "is_expired": days < 0,
        "is_expiring_soon": 0 < days <= 30,
        "is_expiring_very_soon": 0 < days <= 7,
        "status": expiry_status(days),
    }


def reminder_schedule(title: str, expiry_date: datetime, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Reminders still ahead of `now`: 90/30/7 days out and on the expiry day."""
    now = now or utcnow()
    expiry = as_utc(expiry_date)
    reminders = []
    for days, kind in REMINDER_OFFSETS:
        when = expiry - timedelta(days=days)
        if when > now:
            reminders.append({"type": kind, "date": when.isoformat(), "message": f"{title} expires in {days} days"})
    if expiry > now:
        reminders.append({"type": "expired", "date": expiry.isoformat(), "message": f"{title} expires today"})
    return reminders


def validate_dates(issued_date: datetime, expiry_date: datetime) -> None:
    if as_utc(expiry_date) < as_utc(issued_date):
        raise ValueError("Expiry date must not be before the issued date")


def status_after_expiry_change(current_status: str, expiry_date: datetime, now: Optional[datetime] = None) -> str:
    if current_status == "revoked":
        return current_status
    return initial_status(expiry_date, now)


def renewal_record(
    current_status: str,
    current_expiry: datetime,
    new_expiry: datetime,
    renewed_by: Any,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Validate a renewal and return the history entry for it.

    Raises ValueError for revoked permits and for expiry dates that do not
    move forward.
    """
    now = now or utcnow()
    if current_status == "revoked":
        raise ValueError("Revoked permits cannot be renewed")
    if as_utc(new_expiry) <= as_utc(current_expiry):
        raise ValueError("New expiry date must be after current expiry date")
    return {
        "id": prefixed_id("renewal"),
        "renewal_date": now.isoformat(),
        "previous_expiry_date": as_utc(current_expiry).isoformat(),
        "new_expiry_date": as_utc(new_expiry).isoformat(),
        "notes": notes or "",
        "renewed_by": renewed_by,
    }


def revocation_record(current_status: str, reason: str, revoked_by: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    if current_status == "revoked":
        raise ValueError("Permit is already revoked")
    return {"reason": reason, "revoked_at": now.isoformat(), "revoked_by": revoked_by}


# ---------------------------
# Expiry sweep + statistics
# ---------------------------

def is_expiring(permit: Dict[str, Any], now: Optional[datetime] = None, within_days: int = EXPIRING_WITHIN_DAYS) -> bool:
    now = now or utcnow()
    return permit.get("status") == "valid" and as_utc(permit["expiry_date"]) <= now + timedelta(days=within_days)


def lapsed_permits(permits: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Permits still marked valid whose expiry date has passed."""
    now = now or utcnow()
    return [p for p in permits if p.get("status") == "valid" and as_utc(p["expiry_date"]) < now]


def expiring_permits(permits: Iterable[Dict[str, Any]], now: Optional[datetime] = None, within_days: int = EXPIRING_WITHIN_DAYS) -> List[Dict[str, Any]]:
    now = now or utcnow()
    found = [
        {
            "id": p["id"],
            "title": p["title"],
            "number": p["number"],
            "factory_id": p.get("factory_id"),
            "expiry_date": as_utc(p["expiry_date"]).isoformat(),
            "days_until_expiry": days_until(p["expiry_date"], now),
        }
        for p in permits
        if is_expiring(p, now, within_days)
    ]
    return sorted(found, key=lambda p: p["expiry_date"])


def permit_statistics(permits: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    by_type: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    for p in permits:
        by_type[p["permit_type"]] = by_type.get(p["permit_type"], 0) + 1
        by_status[p["status"]] = by_status.get(p["status"], 0) + 1

    expiring = expiring_permits(permits, now)
    cutoff = now - timedelta(days=RECENTLY_EXPIRED_DAYS)
    expired_recently = sorted(
        (p for p in permits if p["status"] == "expired" and as_utc(p["expiry_date"]) >= cutoff),
        key=lambda p: as_utc(p["expiry_date"]),
        reverse=True,
    )[:STATS_LIST_SIZE]

    return {
        "total": len(permits),
        "valid": by_status.get("valid", 0),
        "expired": by_status.get("expired", 0),
        "expiring": len(expiring),
        "by_type": by_type,
        "by_status": by_status,
        "expiring_soon": [
            {k: e[k] for k in ("id", "title", "expiry_date", "days_until_expiry")}
            for e in expiring[:STATS_LIST_SIZE]
        ],
        "expired_recently": [
            {
                "id": p["id"],
                "title": p["title"],
                "expiry_date": as_utc(p["expiry_date"]).isoformat(),
                "days_since_expiry": math.ceil((now - as_utc(p["expiry_date"])).total_seconds() / 86400),
            }
            for p in expired_recently
        ],
    }
