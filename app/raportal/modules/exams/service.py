from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from app.raportal.audit import record_event
from app.raportal.constants import OFFICIAL_RANKS, ROLE_SUPERADMIN
from app.raportal.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.raportal.modules.exams.models import (
    ATTEMPT_AUTO_SUBMITTED,
    ATTEMPT_GRADED,
    ATTEMPT_IN_PROGRESS,
    ATTEMPT_SUBMITTED,
    Exam,
    ExamApproval,
    ExamAttempt,
    ExamResult,
    Question,
)
from app.raportal.modules.notifications.service import notify
from app.raportal.utils import iso, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.raportal.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Grade:
    score: float
    passed: bool
    earned: int
    total: int


def grade_answers(questions: Iterable[Question], answers: dict[str, Any] | None, pass_score: float) -> Grade:
    """
    Score answers against the questions. Unanswered questions count as wrong;
    score is a percentage of points (0 when the exam has no points at all).
    """
    answers = answers or {}
    total = 0
    earned = 0
    for q in questions:
        points = q.points or 1
        total += points
        selected = answers.get(str(q.id))
        if isinstance(selected, bool) or not isinstance(selected, int):
            continue
        if selected == q.correct_answer:
            earned += points
    score = (earned / total) * 100 if total > 0 else 0.0
    return Grade(score=score, passed=score >= pass_score, earned=earned, total=total)


def is_expired(attempt: ExamAttempt, exam: Exam, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    return now - attempt.started_at > timedelta(minutes=exam.duration_minutes)


# ---------- Authoring ----------

def _parse_questions(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list) or not raw:
        raise BadRequestError("questions must be a non-empty list.")
    out: list[dict[str, Any]] = []
    for i, q in enumerate(raw, start=1):
        if not isinstance(q, dict):
            raise BadRequestError(f"Question {i} must be an object.")
        text = (q.get("text") or q.get("question") or "").strip()
        if not text:
            raise BadRequestError(f"Question {i} text is required.")
        options = q.get("options")
        if not isinstance(options, list) or len(options) < 2:
            raise BadRequestError(f"Question {i} needs at least two options.")
        options = [str(o) for o in options]
        correct = parse_int(q.get("correctAnswer"), f"Question {i} correctAnswer")
        if correct is None or not (0 <= correct < len(options)):
            raise BadRequestError(f"Question {i} correctAnswer must index one of its options.")
        points = parse_int(q.get("points"), f"Question {i} points", default=1, minimum=1)
        out.append({"text": text, "options": options, "correct_answer": correct, "points": points})
    return out


def _validate_exam_fields(payload: dict, *, partial: bool = False) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if not partial or "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise BadRequestError("title is required.")
        fields["title"] = title
    if "description" in payload:
        fields["description"] = (payload.get("description") or "").strip() or None
    if "targetRank" in payload:
        rank = (payload.get("targetRank") or "").strip() or None
        if rank and rank not in OFFICIAL_RANKS:
            raise BadRequestError("Unknown targetRank.")
        fields["target_rank"] = rank
    if not partial or "durationMinutes" in payload:
        duration = parse_int(payload.get("durationMinutes"), "durationMinutes", default=30, minimum=1)
        fields["duration_minutes"] = duration
    if not partial or "passScore" in payload:
        raw = payload.get("passScore")
        pass_score = 50.0 if raw is None else parse_float(raw, "passScore")
        if not 0 <= pass_score <= 100:
            raise BadRequestError("passScore must be between 0 and 100.")
        fields["pass_score"] = pass_score
    return fields


def create_exam(s: "Session", payload: dict, user: "User") -> Exam:
    fields = _validate_exam_fields(payload)
    questions = _parse_questions(payload.get("questions"))
    now = datetime.utcnow()
    exam = Exam(**fields, created_at=now, updated_at=now, created_by_user_id=user.id)
    for pos, q in enumerate(questions):
        exam.questions.append(Question(position=pos, **q))
    s.add(exam)
    s.flush()
    record_event(
        s,
        actor=user,
        action="EXAM_CREATE",
        target_type="Exam",
        target_id=exam.id,
        metadata={"title": exam.title, "targetRank": exam.target_rank, "questions": len(questions)},
    )
    return exam


def update_exam(s: "Session", exam: Exam, payload: dict, user: "User") -> Exam:
    fields = _validate_exam_fields(payload, partial=True)
    changes: dict[str, Any] = {}
    for attr, value in fields.items():
        old = getattr(exam, attr)
        if old != value:
            changes[attr] = {"old": old, "new": value}
            setattr(exam, attr, value)
    if "questions" in payload:
        has_attempts = s.query(ExamAttempt.id).filter(ExamAttempt.exam_id == exam.id).first() is not None
        if has_attempts:
            raise ConflictError("Questions cannot be replaced once the exam has attempts.")
        questions = _parse_questions(payload.get("questions"))
        exam.questions.clear()
        s.flush()
        for pos, q in enumerate(questions):
            exam.questions.append(Question(position=pos, **q))
        changes["questions"] = {"new": len(questions)}
    if "isActive" in payload:
        exam.is_active = bool(payload.get("isActive"))
    exam.updated_at = datetime.utcnow()
    s.flush()
    record_event(s, actor=user, action="EXAM_UPDATE", target_type="Exam", target_id=exam.id, metadata={"changes": changes})
    return exam


def delete_exam(s: "Session", exam: Exam, user: "User") -> None:
    """Deactivate; attempts and results stay for history."""
    exam.is_active = False
    exam.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="EXAM_DELETE", target_type="Exam", target_id=exam.id, metadata={"title": exam.title})


def get_exam(s: "Session", exam_id: int, *, include_inactive: bool = False) -> Exam:
    exam = s.get(Exam, exam_id)
    if not exam or (not exam.is_active and not include_inactive):
        raise NotFoundError("Exam not found.")
    return exam


def list_exams(s: "Session", *, include_inactive: bool = False) -> list[Exam]:
    stmt = select(Exam)
    if not include_inactive:
        stmt = stmt.where(Exam.is_active.is_(True))
    return list(s.execute(stmt.order_by(Exam.created_at.desc(), Exam.id.desc())).scalars().all())


# ---------- Attempt lifecycle ----------

def _active_attempt(s: "Session", exam_id: int, user_id: int) -> ExamAttempt | None:
    return (
        s.query(ExamAttempt)
        .filter(
            ExamAttempt.user_id == user_id,
            ExamAttempt.exam_id == exam_id,
            ExamAttempt.status == ATTEMPT_IN_PROGRESS,
        )
        .order_by(ExamAttempt.id.desc())
        .first()
    )


def start_attempt(s: "Session", exam_id: int, user: "User") -> ExamAttempt:
    """
    Return the caller's in-progress attempt for the exam, or open a new one.
    An in-progress attempt whose time ran out is auto-submitted first.

    A partial unique index allows one in-progress row per (user, exam); when a
    concurrent start inserts first, its attempt is returned instead.
    """
    exam = get_exam(s, exam_id)
    active = _active_attempt(s, exam.id, user.id)
    if active is not None:
        if not is_expired(active, exam):
            return active
        logger.info("Auto-submitting expired attempt id=%s before restart", active.id)
        try:
            _finalize(s, active, exam, active.answers or {})
        except ConflictError:
            # submitted concurrently
            pass

    attempt = ExamAttempt(
        user_id=user.id,
        exam_id=exam.id,
        answers={},
        status=ATTEMPT_IN_PROGRESS,
        late=False,
        started_at=datetime.utcnow(),
    )
    try:
        with s.begin_nested():
            s.add(attempt)
    except IntegrityError:
        winner = _active_attempt(s, exam.id, user.id)
        if winner is None:
            raise
        logger.info("Concurrent start for exam_id=%s user_id=%s; returning attempt id=%s", exam.id, user.id, winner.id)
        return winner
    return attempt


def _normalize_answers(raw: Any) -> dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise BadRequestError("answers must be an object mapping question id to option index.")
    out: dict[str, int] = {}
    for k, v in raw.items():
        if isinstance(v, bool) or not isinstance(v, int):
            raise BadRequestError(f"Answer for question {k} must be an integer option index.")
        out[str(k)] = v
    return out


def _finalize(s: "Session", attempt: ExamAttempt, exam: Exam, answers: dict[str, int]) -> tuple[ExamAttempt, ExamResult]:
    """
    Move an in-progress attempt to its terminal state and grade it.

    The transition is a conditional UPDATE on status, so of two concurrent
    submissions exactly one changes the row; the other gets a conflict.
    """
    now = datetime.utcnow()
    late = is_expired(attempt, exam, now)
    new_status = ATTEMPT_AUTO_SUBMITTED if late else ATTEMPT_SUBMITTED
    res = s.execute(
        update(ExamAttempt)
        .where(ExamAttempt.id == attempt.id, ExamAttempt.status == ATTEMPT_IN_PROGRESS)
        .values(status=new_status, late=late, answers=answers, submitted_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ConflictError("Attempt has already been submitted.")
    s.refresh(attempt)

    grade = grade_answers(exam.questions, answers, exam.pass_score)
    attempt.score = grade.score
    attempt.passed = grade.passed
    if attempt.status == ATTEMPT_SUBMITTED:
        attempt.status = ATTEMPT_GRADED

    result = ExamResult(
        attempt_id=attempt.id,
        user_id=attempt.user_id,
        exam_id=attempt.exam_id,
        score=grade.score,
        passed=grade.passed,
        is_published=False,
        created_at=now,
    )
    s.add(result)
    s.flush()
    logger.info(
        "Graded attempt id=%s status=%s score=%.2f passed=%s late=%s",
        attempt.id,
        attempt.status,
        grade.score,
        grade.passed,
        late,
    )
    return attempt, result


def submit_attempt(s: "Session", attempt_id: int, raw_answers: Any, user: "User") -> tuple[ExamAttempt, ExamResult]:
    answers = _normalize_answers(raw_answers)
    attempt = s.get(ExamAttempt, attempt_id)
    if not attempt:
        raise NotFoundError("Attempt not found.")
    if attempt.user_id != user.id:
        raise ForbiddenError("This attempt belongs to another user.")
    if attempt.status != ATTEMPT_IN_PROGRESS:
        raise ConflictError("Attempt has already been submitted.")
    exam = get_exam(s, attempt.exam_id, include_inactive=True)
    return _finalize(s, attempt, exam, answers)


def cleanup_expired_attempts(s: "Session", user: "User") -> int:
    """Auto-submit every in-progress attempt whose time has run out."""
    count = 0
    now = datetime.utcnow()
    attempts = s.query(ExamAttempt).filter(ExamAttempt.status == ATTEMPT_IN_PROGRESS).all()
    for attempt in attempts:
        exam = s.get(Exam, attempt.exam_id)
        if exam is None or not is_expired(attempt, exam, now):
            continue
        try:
            _finalize(s, attempt, exam, attempt.answers or {})
        except ConflictError:
            # submitted concurrently
            continue
        count += 1
    record_event(s, actor=user, action="EXAM_ATTEMPT_CLEANUP", target_type="ExamAttempt", target_id="system", metadata={"count": count})
    return count


# ---------- Results ----------

def get_result(s: "Session", result_id: int) -> ExamResult:
    result = s.get(ExamResult, result_id)
    if not result:
        raise NotFoundError("Result not found.")
    return result


def publish_result(s: "Session", result: ExamResult, user: "User") -> ExamResult:
    result.is_published = True
    result.published_by_user_id = user.id
    result.published_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="EXAM_RESULT_PUBLISH",
        target_type="ExamResult",
        target_id=result.id,
        metadata={"userId": result.user_id, "examId": result.exam_id, "score": result.score},
    )
    title = result.exam.title if result.exam else "your exam"
    notify(
        s,
        user_id=result.user_id,
        type="exam_result",
        title="Exam result published",
        message=f"Your result for {title} is now available: {result.score:.0f}% ({'passed' if result.passed else 'not passed'}).",
        metadata={"resultId": result.id, "examId": result.exam_id},
    )
    return result


def unpublish_result(s: "Session", result: ExamResult, user: "User") -> ExamResult:
    result.is_published = False
    record_event(
        s,
        actor=user,
        action="EXAM_RESULT_UNPUBLISH",
        target_type="ExamResult",
        target_id=result.id,
        metadata={"userId": result.user_id, "examId": result.exam_id},
    )
    return result


def my_results(s: "Session", user: "User") -> list[ExamResult]:
    stmt = (
        select(ExamResult)
        .where(ExamResult.user_id == user.id, ExamResult.is_published.is_(True))
        .order_by(ExamResult.created_at.desc(), ExamResult.id.desc())
    )
    return list(s.execute(stmt).scalars().all())


def all_results(s: "Session", *, exam_id: int | None = None) -> list[ExamResult]:
    stmt = select(ExamResult)
    if exam_id:
        stmt = stmt.where(ExamResult.exam_id == exam_id)
    return list(s.execute(stmt.order_by(ExamResult.created_at.desc(), ExamResult.id.desc())).scalars().all())


# ---------- Rank approvals ----------

APPROVAL_STATUSES = ("pending", "approved", "rejected")
APPROVAL_DECISIONS = ("approved", "rejected")


def next_rank(rank: str) -> str | None:
    """The rank after `rank`, or None at the top."""
    idx = OFFICIAL_RANKS.index(rank)
    return OFFICIAL_RANKS[idx + 1] if idx + 1 < len(OFFICIAL_RANKS) else None


def request_approval(s: "Session", user: "User") -> ExamApproval:
    """Ask the association to clear the caller for the next rank's exam."""
    if user.rank not in OFFICIAL_RANKS:
        raise BadRequestError(f"Unknown rank '{user.rank}'.")
    target = next_rank(user.rank)
    if target is None:
        raise BadRequestError("You already hold the highest rank.")
    if user.association_id is None:
        raise BadRequestError("You must belong to an association to request approval.")
    now = datetime.utcnow()
    approval = ExamApproval(
        ambassador_id=user.id,
        association_id=user.association_id,
        current_rank=user.rank,
        next_rank=target,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    try:
        with s.begin_nested():
            s.add(approval)
    except IntegrityError as e:
        raise ConflictError(f"An approval request for {target} already exists.") from e
    record_event(
        s,
        actor=user,
        action="EXAM_APPROVAL_REQUEST",
        target_type="ExamApproval",
        target_id=approval.id,
        metadata={"currentRank": approval.current_rank, "nextRank": target},
    )
    return approval


def get_approval(s: "Session", approval_id: int) -> ExamApproval:
    approval = s.get(ExamApproval, approval_id)
    if not approval:
        raise NotFoundError("Approval request not found.")
    return approval


def list_approvals(
    s: "Session",
    *,
    association_id: int | None = None,
    ambassador_id: int | None = None,
    status: str | None = None,
) -> list[ExamApproval]:
    stmt = select(ExamApproval)
    if association_id is not None:
        stmt = stmt.where(ExamApproval.association_id == association_id)
    if ambassador_id is not None:
        stmt = stmt.where(ExamApproval.ambassador_id == ambassador_id)
    if status:
        if status not in APPROVAL_STATUSES:
            raise BadRequestError(f"Invalid status. Must be one of: {', '.join(APPROVAL_STATUSES)}")
        stmt = stmt.where(ExamApproval.status == status)
    return list(s.execute(stmt.order_by(ExamApproval.created_at.desc(), ExamApproval.id.desc())).scalars().all())


def update_approval_status(
    s: "Session",
    approval: ExamApproval,
    *,
    status: str,
    reason: str | None,
    actor: "User",
    roles: set[str],
) -> ExamApproval:
    """
    Decide an approval request. Presidents decide requests from their own
    association while pending; a superadmin may revisit any decision.
    """
    status = (status or "").strip().lower()
    if status not in APPROVAL_DECISIONS:
        raise BadRequestError("status must be 'approved' or 'rejected'.")
    is_superadmin = ROLE_SUPERADMIN in roles
    if not is_superadmin and approval.association_id != actor.association_id:
        raise ForbiddenError("Presidents can only decide requests from their own association.")
    if approval.status != "pending" and not is_superadmin:
        raise ConflictError(f"Only a superadmin can override a {approval.status} request.")

    reason = (reason or "").strip() or None
    previous_status = approval.status
    approval.status = status
    approval.approved_by_user_id = actor.id
    approval.approved_at = datetime.utcnow()
    approval.updated_at = approval.approved_at
    approval.rejection_reason = reason if status == "rejected" else None

    record_event(
        s,
        actor=actor,
        action=f"EXAM_APPROVAL_{status.upper()}",
        target_type="ExamApproval",
        target_id=approval.id,
        metadata={
            "ambassadorId": approval.ambassador_id,
            "nextRank": approval.next_rank,
            "previousStatus": previous_status,
            "reason": reason,
        },
    )
    if status == "approved":
        message = f"You have been cleared to sit the {approval.next_rank} exam."
    else:
        message = f"Your request for the {approval.next_rank} exam was declined. Reason: {reason or 'not given'}"
    notify(
        s,
        user_id=approval.ambassador_id,
        type="system",
        title=f"Exam approval {status}",
        message=message,
        metadata={"approvalId": approval.id, "status": status},
    )
    return approval


# ---------- Serialisation ----------

def exam_to_dict(exam: Exam, viewer_roles: set[str]) -> dict[str, Any]:
    show_answers = ROLE_SUPERADMIN in viewer_roles
    questions = []
    for q in exam.questions:
        item: dict[str, Any] = {"id": q.id, "text": q.text, "options": list(q.options or []), "points": q.points}
        if show_answers:
            item["correctAnswer"] = q.correct_answer
        questions.append(item)
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "targetRank": exam.target_rank,
        "durationMinutes": exam.duration_minutes,
        "passScore": exam.pass_score,
        "isActive": exam.is_active,
        "questions": questions,
        "createdAt": iso(exam.created_at),
    }


def attempt_to_dict(attempt: ExamAttempt) -> dict[str, Any]:
    return {
        "id": attempt.id,
        "examId": attempt.exam_id,
        "userId": attempt.user_id,
        "status": attempt.status,
        "late": attempt.late,
        "answers": attempt.answers or {},
        "score": attempt.score,
        "passed": attempt.passed,
        "startedAt": iso(attempt.started_at),
        "submittedAt": iso(attempt.submitted_at),
    }


def result_to_dict(result: ExamResult) -> dict[str, Any]:
    return {
        "id": result.id,
        "attemptId": result.attempt_id,
        "userId": result.user_id,
        "examId": result.exam_id,
        "examTitle": result.exam.title if result.exam else None,
        "score": result.score,
        "passed": result.passed,
        "isPublished": result.is_published,
        "publishedBy": result.published_by_user_id,
        "publishedAt": iso(result.published_at),
        "createdAt": iso(result.created_at),
    }


def approval_to_dict(approval: ExamApproval) -> dict[str, Any]:
    amb = approval.ambassador
    return {
        "id": approval.id,
        "ambassadorId": approval.ambassador_id,
        "ambassador": (
            {
                "id": amb.id,
                "firstName": amb.first_name,
                "lastName": amb.last_name,
                "email": amb.email,
                "userCode": amb.user_code,
            }
            if amb
            else None
        ),
        "associationId": approval.association_id,
        "currentRank": approval.current_rank,
        "nextRank": approval.next_rank,
        "status": approval.status,
        "approvedBy": approval.approved_by_user_id,
        "approvedAt": iso(approval.approved_at),
        "rejectionReason": approval.rejection_reason,
        "createdAt": iso(approval.created_at),
    }
