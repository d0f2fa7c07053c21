"""Subject and prompt template routes, including catalog administration."""

from __future__ import annotations

import json

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from audit import log_event
from catalog import EDITABLE_PROMPT_FIELDS, CatalogStore
from effectiveness import prompt_report
from errors import ValidationError
from helpers import admin_required, current_user_id, json_body, string_list
from models import DIFFICULTIES, PROMPT_INPUT_TYPES
from prompt_selector import select_prompt

bp = Blueprint("catalog", __name__)


@bp.route("/api/subjects")
@login_required
def api_subjects():
    return jsonify({"subjects": [s.to_dict() for s in CatalogStore().list_subjects()]})


@bp.route("/api/prompts")
@login_required
def api_prompts():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true")
    prompts = CatalogStore().list_prompts(
        subject=request.args.get("subject") or None,
        input_type=request.args.get("input_type") or None,
        difficulty=request.args.get("difficulty") or None,
        grade_level=request.args.get("grade_level") or None,
        active_only=not (include_inactive and current_user.is_admin),
    )
    return jsonify({"prompts": [p.to_dict() for p in prompts]})


@bp.route("/api/prompts/select")
@login_required
def api_select_prompt():
    subject = request.args.get("subject", "").strip()
    if not subject:
        raise ValidationError("subject is required")
    input_type = request.args.get("input_type", "any")
    if input_type not in PROMPT_INPUT_TYPES:
        raise ValidationError(f"input_type must be one of {', '.join(PROMPT_INPUT_TYPES)}")
    difficulty = request.args.get("difficulty", "medium")
    if difficulty and difficulty not in DIFFICULTIES:
        raise ValidationError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")

    prompt = select_prompt(
        subject,
        input_type=input_type,
        difficulty=difficulty or None,
        grade_level=request.args.get("grade_level") or None,
        keywords=string_list(request.args.get("keywords"), "keywords"),
    )
    return jsonify({"prompt": prompt.to_dict() if prompt else None})


@bp.route("/api/prompts/<int:prompt_id>")
@login_required
def api_prompt_detail(prompt_id):
    return jsonify({"prompt": CatalogStore().get_prompt(prompt_id).to_dict()})


@bp.route("/api/prompts/<int:prompt_id>/effectiveness")
@login_required
def api_prompt_effectiveness(prompt_id):
    return jsonify(prompt_report(prompt_id))


# ── Administration ───────────────────────────────────────────


@bp.route("/api/prompts", methods=["POST"])
@admin_required
def api_create_prompt():
    data = json_body()
    subject = (data.pop("subject", "") or "").strip()
    if not subject:
        raise ValidationError("subject is required")
    prompt = CatalogStore().create_prompt(subject, created_by=current_user_id(), **data)
    log_event("prompt_created", current_user_id(), f"prompt_id={prompt.id} subject={subject}")
    return jsonify({"prompt": prompt.to_dict()}), 201


@bp.route("/api/prompts/<int:prompt_id>", methods=["PATCH"])
@admin_required
def api_update_prompt(prompt_id):
    data = json_body()
    prompt = CatalogStore().update_prompt(prompt_id, **data)
    changed = sorted(k for k in data if k in EDITABLE_PROMPT_FIELDS)
    log_event("prompt_updated", current_user_id(),
              f"prompt_id={prompt_id} version={prompt.version} fields={json.dumps(changed)}")
    return jsonify({"prompt": prompt.to_dict()})


@bp.route("/api/prompts/<int:prompt_id>/deactivate", methods=["POST"])
@admin_required
def api_deactivate_prompt(prompt_id):
    prompt = CatalogStore().set_prompt_active(prompt_id, False)
    log_event("prompt_deactivated", current_user_id(), f"prompt_id={prompt_id}")
    return jsonify({"prompt": prompt.to_dict()})


@bp.route("/api/prompts/<int:prompt_id>/variations", methods=["POST"])
@admin_required
def api_add_variation(prompt_id):
    data = json_body()
    variation = CatalogStore().add_variation(
        prompt_id, data.get("variation_name", ""), data.get("prompt_template", ""),
    )
    log_event("prompt_variation_added", current_user_id(),
              f"prompt_id={prompt_id} variation_id={variation.id}")
    return jsonify({"variation": variation.to_dict()}), 201
