"""Progress ledger, achievements, daily activity and insights routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from achievements import progress_report
from helpers import current_user_id
from insights import generate_insights
from ledger import ProgressLedgerDB

bp = Blueprint("progress", __name__)


@bp.route("/api/progress")
@login_required
def api_progress():
    ledger = ProgressLedgerDB(current_user_id()).get()
    return jsonify({"user": current_user.to_dict(), "progress": ledger.to_dict()})


@bp.route("/api/achievements")
@login_required
def api_achievements():
    report = progress_report(current_user_id(), rarity=request.args.get("rarity") or None)
    return jsonify({
        "achievements": report,
        "unlocked": sum(1 for a in report if a["is_completed"]),
        "total": len(report),
    })


@bp.route("/api/activity")
@login_required
def api_activity():
    try:
        days = min(365, max(1, int(request.args.get("days", 30))))
    except (TypeError, ValueError):
        days = 30
    return jsonify({
        "days": days,
        "activity": ProgressLedgerDB(current_user_id()).recent_activity(days),
    })


@bp.route("/api/insights")
@login_required
def api_insights():
    return jsonify({"insights": generate_insights(current_user_id())})
