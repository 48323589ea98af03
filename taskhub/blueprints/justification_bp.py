"""
Justification Blueprint: late-completion justification workflow.

Endpoints:
    GET    /api/v1/justifications/mine                  USER: own late tasks + state
    GET    /api/v1/justifications/pending               LEADER/ADMIN review queue
    GET    /api/v1/justifications/approved              LEADER/ADMIN
    GET    /api/v1/justifications/blocked               LEADER/ADMIN: blocked tasks
    PUT    /api/v1/justifications/task/<task_id>/unblock
    POST   /api/v1/justifications                       Body: { "task_id", "description" }
    GET    /api/v1/justifications/<id>
    PUT    /api/v1/justifications/<id>/review           Body: { "action", "comment" | "reviewComment" }
    POST   /api/v1/justifications/<id>/evidences        Body: { "file_name", "mime_type", "content_base64" }
    GET    /api/v1/justifications/<id>/evidences/<eid>/download
    DELETE /api/v1/justifications/<id>/evidences/<eid>

Review and unblock change what task listings show, so they invalidate the
listing cache like any other mutation.
"""

import logging

from flask import Blueprint, jsonify, request, send_file

from taskhub.blueprints import invalidates_task_listings, json_body, register_error_handlers
from taskhub.middleware.jwt_auth import require_actor
from taskhub.services import justification_service

logger = logging.getLogger(__name__)

justification_bp = Blueprint("justification_bp", __name__, url_prefix="/api/v1/justifications")
register_error_handlers(justification_bp)


def _competencia_arg():
    return request.args.get("competenciaYm") or request.args.get("competencia_ym")


# ── Views ──────────────────────────────────────────────────────────────────────


@justification_bp.route("/mine", methods=["GET"])
def list_mine():
    actor = require_actor()
    items = justification_service.list_mine(actor, _competencia_arg())
    return jsonify({"items": items}), 200


@justification_bp.route("/pending", methods=["GET"])
def list_pending():
    actor = require_actor()
    return jsonify({"items": justification_service.list_pending(actor, _competencia_arg())}), 200


@justification_bp.route("/approved", methods=["GET"])
def list_approved():
    actor = require_actor()
    return jsonify({"items": justification_service.list_approved(actor, _competencia_arg())}), 200


@justification_bp.route("/blocked", methods=["GET"])
def list_blocked():
    actor = require_actor()
    return jsonify({"items": justification_service.list_blocked(actor)}), 200


# ── Commands ───────────────────────────────────────────────────────────────────


@justification_bp.route("/task/<task_id>/unblock", methods=["PUT"])
@invalidates_task_listings
def unblock_task(task_id):
    actor = require_actor()
    task = justification_service.unblock_task(actor, task_id)
    return jsonify(task.to_dict()), 200


@justification_bp.route("", methods=["POST"])
@invalidates_task_listings
def create_justification():
    actor = require_actor()
    data = json_body()
    just = justification_service.create_justification(
        actor,
        data.get("task_id") or data.get("taskId"),
        data.get("description"),
    )
    return jsonify(just.to_dict()), 201


@justification_bp.route("/<justification_id>", methods=["GET"])
def get_justification(justification_id):
    actor = require_actor()
    just = justification_service.get_justification(actor, justification_id)
    body = just.to_dict()
    body["task"] = just.task.to_dict()
    return jsonify(body), 200


@justification_bp.route("/<justification_id>/review", methods=["PUT"])
@invalidates_task_listings
def review_justification(justification_id):
    actor = require_actor()
    data = json_body()
    just = justification_service.review_justification(
        actor,
        justification_id,
        (data.get("action") or "").strip(),
        data.get("comment") or data.get("reviewComment"),
    )
    return jsonify(just.to_dict()), 200


@justification_bp.route("/<justification_id>/evidences", methods=["POST"])
@invalidates_task_listings
def attach_evidence(justification_id):
    actor = require_actor()
    data = json_body()
    evidence = justification_service.attach_evidence(
        actor,
        justification_id,
        data.get("file_name") or data.get("fileName"),
        data.get("mime_type") or data.get("mimeType"),
        data.get("content_base64") or data.get("contentBase64") or data.get("content"),
    )
    return jsonify(evidence.to_dict()), 201


@justification_bp.route("/<justification_id>/evidences/<evidence_id>/download", methods=["GET"])
def download_evidence(justification_id, evidence_id):
    actor = require_actor()
    evidence, path = justification_service.open_evidence(actor, justification_id, evidence_id)
    return send_file(
        path,
        mimetype=evidence.mime_type,
        as_attachment=True,
        download_name=evidence.file_name,
    )


@justification_bp.route("/<justification_id>/evidences/<evidence_id>", methods=["DELETE"])
@invalidates_task_listings
def remove_evidence(justification_id, evidence_id):
    actor = require_actor()
    justification_service.remove_evidence(actor, justification_id, evidence_id)
    return jsonify({"deleted": True, "id": evidence_id}), 200
