"""Submission creation, lifecycle transitions and rating.

Status transitions are driven by the solver worker, which authenticates with
the admin role. Students create, read and rate their own submissions.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from errors import ValidationError
from extensions import limiter
from helpers import admin_required, current_user_id, json_body, paginate_args, paginated_response, string_list
from submissions import SubmissionPipeline, SubmissionStore

bp = Blueprint("submissions", __name__)


def _pipeline() -> SubmissionPipeline:
    return SubmissionPipeline(default_grade_level=current_app.config.get("DEFAULT_GRADE_LEVEL", "middle"))


def _scope() -> str | None:
    """Admins (the solver worker) may read any submission; users only their own."""
    return None if current_user.is_admin else current_user_id()


def _submission_limit() -> str:
    return current_app.config.get("SUBMISSION_RATE_LIMIT", "30 per minute")


@bp.route("/api/submissions", methods=["POST"])
@login_required
@limiter.limit(_submission_limit)
def api_create_submission():
    data = json_body()
    for key in ("title", "input_type", "text_content", "content_ref", "subject",
                "difficulty", "grade_level", "description"):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ValidationError(f"{key} must be a string")
    submission = _pipeline().create(
        current_user_id(),
        title=data.get("title", ""),
        input_type=data.get("input_type", ""),
        text_content=data.get("text_content", ""),
        content_ref=data.get("content_ref", ""),
        subject=data.get("subject", ""),
        difficulty=data.get("difficulty") or None,
        grade_level=data.get("grade_level") or current_user.grade_level or "",
        tags=string_list(data.get("tags"), "tags"),
        description=data.get("description", ""),
        keywords=string_list(data.get("keywords"), "keywords"),
    )
    return jsonify({"submission": submission.to_dict()}), 201


@bp.route("/api/submissions")
@login_required
def api_list_submissions():
    page, limit = paginate_args()
    status = request.args.get("status") or None
    subject = request.args.get("subject") or None
    store = SubmissionStore()
    uid = current_user_id()
    items = store.list_for_user(uid, status=status, subject=subject,
                                limit=limit, offset=(page - 1) * limit)
    total = store.count_for_user(uid, status=status, subject=subject)
    return jsonify(paginated_response([s.to_dict() for s in items], total, page, limit))


@bp.route("/api/submissions/<submission_id>")
@login_required
def api_get_submission(submission_id):
    return jsonify({"submission": SubmissionStore().get(submission_id, _scope()).to_dict()})


@bp.route("/api/submissions/<submission_id>/processing", methods=["POST"])
@admin_required
def api_start_processing(submission_id):
    submission = _pipeline().start_processing(submission_id)
    return jsonify({"submission": submission.to_dict()})


@bp.route("/api/submissions/<submission_id>/complete", methods=["POST"])
@admin_required
def api_complete_submission(submission_id):
    data = json_body()
    submission, result = _pipeline().complete(
        submission_id,
        solution=data.get("solution", ""),
        explanation=data.get("explanation", ""),
        steps=data.get("steps"),
        confidence_score=data.get("confidence_score"),
        ai_model_used=data.get("ai_model_used", ""),
        ai_response=data.get("ai_response"),
        processing_time_ms=data.get("processing_time_ms"),
    )
    return jsonify({
        "submission": submission.to_dict(),
        "result": result.to_dict() if result else None,
    })


@bp.route("/api/submissions/<submission_id>/error", methods=["POST"])
@admin_required
def api_fail_submission(submission_id):
    data = json_body()
    submission = _pipeline().fail(
        submission_id,
        error_message=data.get("error_message", ""),
        processing_time_ms=data.get("processing_time_ms"),
    )
    return jsonify({"submission": submission.to_dict()})


@bp.route("/api/submissions/<submission_id>/archive", methods=["POST"])
@admin_required
def api_archive_submission(submission_id):
    submission = _pipeline().archive(submission_id)
    return jsonify({"submission": submission.to_dict()})


@bp.route("/api/submissions/<submission_id>/rating", methods=["POST"])
@login_required
def api_rate_submission(submission_id):
    data = json_body()
    if "rating" not in data:
        raise ValidationError("rating is required")
    submission = _pipeline().rate(
        submission_id, data["rating"], feedback=data.get("feedback", ""),
        user_id=current_user_id(),
    )
    return jsonify({"submission": submission.to_dict()})
