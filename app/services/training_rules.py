"""Training lifecycle, assessments and certificates."""
from __future__ import annotations

import calendar
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.ids import prefixed_id
from app.core.timeutils import as_utc, utcnow

TRAINING_TYPES = ("initial", "refresher", "specialized")
TRAINING_CATEGORIES = ("safety", "compliance", "technical", "soft_skills")
TRAINING_STATUSES = ("draft", "scheduled", "in_progress", "completed", "cancelled")

# operation -> (required current status, new status, error)
LIFECYCLE = {
    "schedule": ("draft", "scheduled", "Only draft trainings can be scheduled"),
    "start": ("scheduled", "in_progress", "Only scheduled trainings can be started"),
    "complete": ("in_progress", "completed", "Only in-progress trainings can be completed"),
}

CERTIFICATE_VALIDITY_MONTHS = {"safety": 12, "compliance": 24, "technical": 18, "soft_skills": 36}
DEFAULT_VALIDITY_MONTHS = 24

MATERIAL_TYPES = ("document", "video", "presentation", "quiz", "other")
QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer", "essay")
ATTENDANCE_STATUSES = ("present", "absent", "excused")

_BASE36 = string.digits + string.ascii_uppercase


def generate_training_id() -> str:
    return prefixed_id("training")


def next_status(current: str, operation: str) -> str:
    required, target, error = LIFECYCLE[operation]
    if current != required:
        raise ValueError(error)
    return target


# ---------------------------
# Materials / assessments
# ---------------------------

def add_material(materials: Iterable[Dict[str, Any]], material: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return a new material list with `material` added, ordered by `order`."""
    entry = {"id": prefixed_id("material"), **material}
    return sorted([*materials, entry], key=lambda m: m.get("order", 0))


def build_assessment(data: Dict[str, Any]) -> Dict[str, Any]:
    questions = [
        {"id": i, **q, "options": q.get("options") or []}
        for i, q in enumerate(data.get("questions") or [], start=1)
    ]
    return {
        **data,
        "id": prefixed_id("assessment"),
        "questions": questions,
        "total_points": sum(q["points"] for q in questions),
    }


def find_assessment(assessments: Iterable[Dict[str, Any]], assessment_id: str) -> Optional[Dict[str, Any]]:
    return next((a for a in assessments if a.get("id") == assessment_id), None)


def grade_answer(question: Dict[str, Any], answer: Any) -> bool:
    expected = question.get("correct_answer")
    if answer is None or expected is None:
        return False
    kind = question.get("type")
    if kind in ("multiple_choice", "true_false"):
        return str(answer) == str(expected)
    if kind == "short_answer":
        return str(expected).lower() in str(answer).lower()
    # essays need a human grader
    return False


def grade_submission(assessment: Dict[str, Any], answers: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Score `answers` (question id -> answer) against an assessment."""
    now = now or utcnow()
    score = 0
    results = []
    for question in assessment["questions"]:
        answer = answers.get(str(question["id"]))
        correct = grade_answer(question, answer)
        if correct:
            score += question["points"]
        results.append({
            "question_id": question["id"],
            "answer": answer,
            "correct_answer": question.get("correct_answer"),
            "is_correct": correct,
            "points": question["points"] if correct else 0,
        })
    total = assessment.get("total_points") or 0
    percentage = round(score / total * 100) if total else 0
    return {
        "assessment_id": assessment["id"],
        "results": results,
        "score": score,
        "total_points": total,
        "percentage": percentage,
        "passed": percentage >= assessment["passing_score"],
        "submitted_at": now.isoformat(),
    }


def attempts_used(submissions: Iterable[Dict[str, Any]], assessment_id: str) -> int:
    return sum(1 for s in submissions if s.get("assessment_id") == assessment_id)


# ---------------------------
# Certificates
# ---------------------------

def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def certificate_valid_until(category: str, issued_at: datetime, validity_days: Optional[int] = None) -> datetime:
    issued_at = as_utc(issued_at)
    if validity_days:
        return issued_at + timedelta(days=validity_days)
    return add_months(issued_at, CERTIFICATE_VALIDITY_MONTHS.get(category, DEFAULT_VALIDITY_MONTHS))


def generate_certificate_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    stamp = str(int(now.timestamp() * 1000))[-8:]
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"CERT-{stamp}-{suffix}"


def certificate_blocker(
    training_status: str,
    attendance_status: str,
    assessment_required: bool,
    best_score: Optional[int],
    passing_score: int,
    already_issued: bool,
) -> Optional[str]:
    """Reason a certificate cannot be issued, or None when it can."""
    if already_issued:
        return "Certificate already issued"
    if training_status != "completed":
        return "Certificates are issued for completed trainings only"
    if attendance_status != "present":
        return "Participant did not attend the session"
    if assessment_required and (best_score is None or best_score < passing_score):
        return "Participant has not passed the assessment"
    return None


# ---------------------------
# Statistics
# ---------------------------

def training_statistics(trainings: List[Dict[str, Any]], total_attendances: int) -> Dict[str, Any]:
    by_type: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    for t in trainings:
        by_type[t["training_type"]] = by_type.get(t["training_type"], 0) + 1
        by_status[t["status"]] = by_status.get(t["status"], 0) + 1
    recent = sorted(trainings, key=lambda t: as_utc(t["created_at"]), reverse=True)[:10]
    return {
        "stats": {
            "total": len(trainings),
            "completed": by_status.get("completed", 0),
            "in_progress": by_status.get("in_progress", 0),
            "scheduled": by_status.get("scheduled", 0),
            "draft": by_status.get("draft", 0),
            "total_attendances": total_attendances,
        },
        "by_type": by_type,
        "by_status": by_status,
        "recent": [
            {"id": t["id"], "title": t["title"], "status": t["status"], "factory_id": t["factory_id"]}
            for t in recent
        ],
    }
