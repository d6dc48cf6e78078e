"""Blueprints exposing proving, jobs and verification over HTTP."""
from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import Any

from flask import Blueprint, current_app, jsonify, request, send_file

from zkuplc.bundle import ProofBundle
from zkuplc.errors import DecodeError, VerificationError, VerificationFormatError
from zkuplc.evaluator.base import decode_program_hex
from zkuplc.prover import ProvingService
from zkuplc.verify import check_commitment, verify_bundle

from .errors import APIError
from .models import ProveRequest, VerifyCommitmentRequest, VerifyStarkRequest

LOGGER = logging.getLogger(__name__)

api_bp = Blueprint("zkuplc_api", __name__)
data_bp = Blueprint("zkuplc_data", __name__)

AGG_VK_MISSING = "agg_stark.vk not found. Run `zkuplc setup` to generate the aggregation keys."


def _json_request() -> dict:
    limit = current_app.config.get("MAX_CONTENT_LENGTH")
    if limit and request.content_length and request.content_length > limit:
        raise APIError(413, f"Request body exceeds {limit} bytes")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise APIError(400, "JSON body required")
    return data


def _async_requested() -> bool:
    return request.args.get("async", "false").lower() in {"1", "true", "yes"}


def _run_prove(service: ProvingService, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
    outcome = service.prove(payload["program_hex"])
    return outcome.to_dict(), outcome.status_code


def _agg_vk_path() -> Path:
    return Path(current_app.config["AGG_VK_PATH"])


@api_bp.get("/health")
def api_health():
    return jsonify({"status": "ok", "service": current_app.config["SERVICE_NAME"]}), 200


@api_bp.post("/prove")
def api_prove():
    req = ProveRequest.model_validate(_json_request())
    service: ProvingService = current_app.extensions["proving_service"]
    if _async_requested():
        manager = current_app.extensions["job_manager"]
        job = manager.submit("prove", partial(_run_prove, service), req.model_dump())
        return jsonify({"jobId": job.job_id, "status": job.status, "location": job.location}), 202
    body, status = _run_prove(service, req.model_dump())
    return jsonify(body), status


@api_bp.get("/jobs/<job_id>")
def api_job_status(job_id: str):
    manager = current_app.extensions["job_manager"]
    job = manager.get(job_id)
    if not job:
        raise APIError(404, "job not found")
    return jsonify(job.to_dict()), 200


@api_bp.get("/jobs")
def api_job_list():
    manager = current_app.extensions["job_manager"]
    limit_raw = request.args.get("limit")
    try:
        limit = int(limit_raw) if limit_raw else 50
    except ValueError:
        raise APIError(400, "limit must be an integer")
    jobs = [job.to_dict() for job in manager.list(limit=limit)]
    return jsonify({"jobs": jobs}), 200


@api_bp.post("/jobs/<job_id>/cancel")
def api_job_cancel(job_id: str):
    manager = current_app.extensions["job_manager"]
    if not manager.cancel(job_id):
        raise APIError(404, "job not found or already started")
    return jsonify({"jobId": job_id, "status": "canceled"}), 200


@api_bp.post("/verify/commitment")
def api_verify_commitment():
    req = VerifyCommitmentRequest.model_validate(_json_request())
    try:
        program = decode_program_hex(req.program_hex)
        check = check_commitment(program, req.result, req.commitment)
    except DecodeError as exc:
        raise APIError(400, str(exc))
    return jsonify(check.to_dict()), 200


@api_bp.post("/verify/stark")
def api_verify_stark():
    req = VerifyStarkRequest.model_validate(_json_request())
    vk_path = _agg_vk_path()
    if not vk_path.is_file():
        raise APIError(503, AGG_VK_MISSING)
    backend = current_app.extensions["stark_backend"]
    try:
        bundle = ProofBundle.from_dict(req.model_dump())
        valid = verify_bundle(bundle, vk_path.read_bytes(), backend)
    except VerificationFormatError as exc:
        raise APIError(400, str(exc))
    except VerificationError as exc:
        LOGGER.error("STARK verification could not run: %s", exc)
        raise APIError(500, str(exc))
    return jsonify({"valid": valid}), 200


@data_bp.get("/agg_stark.vk")
def data_agg_vk():
    vk_path = _agg_vk_path()
    if not vk_path.is_file():
        raise APIError(404, AGG_VK_MISSING)
    return send_file(vk_path.resolve(), mimetype="application/octet-stream")


__all__ = ["api_bp", "data_bp"]
