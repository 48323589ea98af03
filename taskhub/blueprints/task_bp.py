"""
Task Blueprint.

Endpoints:
    GET    /api/v1/tasks                     ?area=&responsavel=&status=&competenciaYm=&search=
    POST   /api/v1/tasks                     create (subtask when parent_task_id is given)
    GET    /api/v1/tasks/<task_id>
    PUT    /api/v1/tasks/<task_id>           partial update (TaskPatch fields only)
    DELETE /api/v1/tasks/<task_id>           soft delete, cascades to subtasks
    GET    /api/v1/tasks/<task_id>/subtasks
    POST   /api/v1/tasks/<task_id>/duplicate
    GET    /api/v1/tasks/<task_id>/evidences
    POST   /api/v1/tasks/<task_id>/evidences             open tasks only (TASK_CONCLUDED)
    GET    /api/v1/tasks/<task_id>/evidences/<id>/download   ?inline=1 for preview
    DELETE /api/v1/tasks/<task_id>/evidences/<id>

Layer contract:
    - Blueprint: parse input, resolve the actor, call task_service, render.
    - NO db.session calls and NO permission checks here.
    - Every mutating route is wrapped by invalidates_task_listings.
"""

import logging

from flask import Blueprint, jsonify, request, send_file

from taskhub.blueprints import invalidates_task_listings, json_body, register_error_handlers
from taskhub.middleware.jwt_auth import require_actor
from taskhub.services import cache_service, task_evidence_service, task_service
from taskhub.services.task_patch import TaskPatch

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")
register_error_handlers(task_bp)


def _listing_filters() -> dict:
    args = request.args
    filters = {
        "area": args.get("area"),
        "responsavel": args.get("responsavel"),
        "status": args.get("status"),
        "competencia_ym": args.get("competenciaYm") or args.get("competencia_ym"),
        "search": args.get("search"),
    }
    return {k: v for k, v in filters.items() if v}


@task_bp.route("/tasks", methods=["GET"])
def list_tasks():
    actor = require_actor()
    filters = _listing_filters()
    today = task_service.tenant_today(actor.tenant_id)
    items = cache_service.get_task_listing(
        actor.tenant_id,
        cache_service.actor_scope(actor),
        filters,
        today.isoformat(),
        lambda: task_service.list_tasks(actor, filters, today=today),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@task_bp.route("/tasks", methods=["POST"])
@invalidates_task_listings
def create_task():
    actor = require_actor()
    task = task_service.create_task(actor, json_body())
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    actor = require_actor()
    return jsonify(task_service.get_task(actor, task_id).to_dict()), 200


@task_bp.route("/tasks/<task_id>", methods=["PUT", "PATCH"])
@invalidates_task_listings
def update_task(task_id):
    actor = require_actor()
    patch = TaskPatch.from_payload(json_body())
    task = task_service.update_task(actor, task_id, patch)
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<task_id>", methods=["DELETE"])
@invalidates_task_listings
def delete_task(task_id):
    actor = require_actor()
    task_service.delete_task(actor, task_id)
    return jsonify({"deleted": True, "id": task_id}), 200


@task_bp.route("/tasks/<task_id>/subtasks", methods=["GET"])
def list_subtasks(task_id):
    actor = require_actor()
    subtasks = task_service.list_subtasks(actor, task_id)
    return jsonify({"items": [s.to_dict() for s in subtasks]}), 200


@task_bp.route("/tasks/<task_id>/duplicate", methods=["POST"])
@invalidates_task_listings
def duplicate_task(task_id):
    actor = require_actor()
    copy = task_service.duplicate_task(actor, task_id)
    return jsonify(copy.to_dict()), 201


# ═══════════════════════════════════════════════════════════════
# Task evidences
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/tasks/<task_id>/evidences", methods=["GET"])
def list_task_evidences(task_id):
    actor = require_actor()
    evidences = task_evidence_service.list_task_evidences(actor, task_id)
    return jsonify({"items": [e.to_dict() for e in evidences], "total": len(evidences)}), 200


@task_bp.route("/tasks/<task_id>/evidences", methods=["POST"])
@invalidates_task_listings
def attach_task_evidence(task_id):
    """Body: { "fileName", "mimeType", "contentBase64" } (snake_case also accepted)"""
    actor = require_actor()
    data = json_body()
    evidence = task_evidence_service.attach_task_evidence(
        actor,
        task_id,
        data.get("file_name") or data.get("fileName"),
        data.get("mime_type") or data.get("mimeType"),
        data.get("content_base64") or data.get("contentBase64") or data.get("content"),
    )
    return jsonify({"evidence": evidence.to_dict(), "task": evidence.task.to_dict(include_evidences=True)}), 201


@task_bp.route("/tasks/<task_id>/evidences/<evidence_id>/download", methods=["GET"])
def download_task_evidence(task_id, evidence_id):
    """``?inline=1`` serves the file for in-browser preview instead of a download."""
    actor = require_actor()
    evidence, path = task_evidence_service.open_task_evidence(actor, task_id, evidence_id)
    inline = request.args.get("inline", "").lower() in ("1", "true")
    response = send_file(
        path,
        mimetype=evidence.mime_type,
        as_attachment=not inline,
        download_name=evidence.file_name,
    )
    if inline:
        response.headers["Cache-Control"] = "private, max-age=3600"
    return response


@task_bp.route("/tasks/<task_id>/evidences/<evidence_id>", methods=["DELETE"])
@invalidates_task_listings
def remove_task_evidence(task_id, evidence_id):
    actor = require_actor()
    task = task_evidence_service.remove_task_evidence(actor, task_id, evidence_id)
    return jsonify({"deleted": True, "id": evidence_id, "task": task.to_dict(include_evidences=True)}), 200
