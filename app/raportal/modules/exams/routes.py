from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.constants import ROLE_AMBASSADOR, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.exams.service import (
    all_results,
    approval_to_dict,
    attempt_to_dict,
    cleanup_expired_attempts,
    create_exam,
    delete_exam,
    exam_to_dict,
    get_approval,
    get_exam,
    get_result,
    list_approvals,
    list_exams,
    my_results,
    publish_result,
    request_approval,
    result_to_dict,
    start_attempt,
    submit_attempt,
    unpublish_result,
    update_approval_status,
    update_exam,
)
from app.raportal.rbac import current_roles, current_user, require_auth, require_roles
from app.raportal.utils import json_payload, parse_int

bp = Blueprint("exams", __name__)


# ---------- Exams ----------
@bp.post("/exams")
@require_roles(ROLE_SUPERADMIN)
def exams_create():
    s = db_session()
    exam = create_exam(s, json_payload(), current_user())
    s.commit()
    return jsonify(exam_to_dict(exam, current_roles())), 201


@bp.get("/exams")
@require_auth
def exams_list():
    s = db_session()
    roles = current_roles()
    include_inactive = ROLE_SUPERADMIN in roles and request.args.get("all") == "1"
    return jsonify([exam_to_dict(e, roles) for e in list_exams(s, include_inactive=include_inactive)])


@bp.get("/exams/<int:exam_id>")
@require_auth
def exams_detail(exam_id: int):
    s = db_session()
    roles = current_roles()
    exam = get_exam(s, exam_id, include_inactive=ROLE_SUPERADMIN in roles)
    return jsonify(exam_to_dict(exam, roles))


@bp.patch("/exams/<int:exam_id>")
@require_roles(ROLE_SUPERADMIN)
def exams_update(exam_id: int):
    s = db_session()
    exam = update_exam(s, get_exam(s, exam_id, include_inactive=True), json_payload(), current_user())
    s.commit()
    return jsonify(exam_to_dict(exam, current_roles()))


@bp.delete("/exams/<int:exam_id>")
@require_roles(ROLE_SUPERADMIN)
def exams_delete(exam_id: int):
    s = db_session()
    delete_exam(s, get_exam(s, exam_id, include_inactive=True), current_user())
    s.commit()
    return jsonify({"message": "Exam deactivated."})


@bp.post("/exams/cleanup")
@require_roles(ROLE_SUPERADMIN)
def exams_cleanup():
    s = db_session()
    count = cleanup_expired_attempts(s, current_user())
    s.commit()
    return jsonify({"cleanedCount": count})


# ---------- Attempts ----------
@bp.post("/exams/<int:exam_id>/start")
@require_roles(ROLE_AMBASSADOR)
def exams_start(exam_id: int):
    s = db_session()
    attempt = start_attempt(s, exam_id, current_user())
    s.commit()
    return jsonify(attempt_to_dict(attempt))


@bp.post("/exams/attempts/<int:attempt_id>/submit")
@require_roles(ROLE_AMBASSADOR)
def attempts_submit(attempt_id: int):
    s = db_session()
    payload = json_payload()
    attempt, result = submit_attempt(s, attempt_id, payload.get("answers"), current_user())
    s.commit()
    return jsonify(
        {
            "attempt": attempt_to_dict(attempt),
            "score": result.score,
            "passed": result.passed,
            "resultId": result.id,
        }
    )


# ---------- Results ----------
@bp.get("/exams/results/my")
@require_roles(ROLE_AMBASSADOR)
def results_my():
    s = db_session()
    return jsonify([result_to_dict(r) for r in my_results(s, current_user())])


@bp.get("/exams/results/all")
@require_roles(ROLE_SUPERADMIN)
def results_all():
    s = db_session()
    exam_id = parse_int(request.args.get("examId"), "examId")
    return jsonify([result_to_dict(r) for r in all_results(s, exam_id=exam_id)])


@bp.post("/exams/results/<int:result_id>/publish")
@require_roles(ROLE_SUPERADMIN)
def results_publish(result_id: int):
    s = db_session()
    result = publish_result(s, get_result(s, result_id), current_user())
    s.commit()
    return jsonify(result_to_dict(result))


@bp.post("/exams/results/<int:result_id>/unpublish")
@require_roles(ROLE_SUPERADMIN)
def results_unpublish(result_id: int):
    s = db_session()
    result = unpublish_result(s, get_result(s, result_id), current_user())
    s.commit()
    return jsonify(result_to_dict(result))


# ---------- Rank approvals ----------
@bp.post("/exams/approvals")
@require_roles(ROLE_AMBASSADOR)
def approvals_request():
    s = db_session()
    approval = request_approval(s, current_user())
    s.commit()
    return jsonify(approval_to_dict(approval)), 201


@bp.get("/exams/approvals/my")
@require_roles(ROLE_AMBASSADOR)
def approvals_my():
    s = db_session()
    return jsonify([approval_to_dict(a) for a in list_approvals(s, ambassador_id=current_user().id)])


@bp.get("/exams/approvals")
@require_roles(ROLE_PRESIDENT, ROLE_SUPERADMIN)
def approvals_list():
    s = db_session()
    user = current_user()
    if ROLE_SUPERADMIN in current_roles():
        association_id = parse_int(request.args.get("associationId"), "associationId")
    else:
        association_id = user.association_id
        if association_id is None:
            return jsonify([])
    status = (request.args.get("status") or "").strip().lower() or None
    return jsonify([approval_to_dict(a) for a in list_approvals(s, association_id=association_id, status=status)])


@bp.patch("/exams/approvals/<int:approval_id>")
@require_roles(ROLE_PRESIDENT, ROLE_SUPERADMIN)
def approvals_update(approval_id: int):
    s = db_session()
    payload = json_payload()
    approval = update_approval_status(
        s,
        get_approval(s, approval_id),
        status=payload.get("status"),
        reason=payload.get("reason"),
        actor=current_user(),
        roles=current_roles(),
    )
    s.commit()
    return jsonify(approval_to_dict(approval))
