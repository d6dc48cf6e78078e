"""Flask application factory for the zkuplc proving service."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

from flask import Flask, jsonify, make_response, request, send_from_directory
from pydantic import ValidationError
from werkzeug.exceptions import NotFound, RequestEntityTooLarge

from zkuplc.artifacts import ArtifactLayout, load_artifacts
from zkuplc.config import Settings
from zkuplc.evaluator import get_evaluator
from zkuplc.jobs import JobManager
from zkuplc.pipeline import get_pipeline
from zkuplc.prover import ProvingService
from zkuplc.verify import StarkBackend, get_stark_backend

from .errors import APIError
from .routes import api_bp, data_bp

LOGGER = logging.getLogger(__name__)


def build_proving_service(settings: Settings) -> ProvingService:
    """Select the engines and load every proving artifact; fail fast if any is missing."""
    evaluator = get_evaluator(settings.evaluator, settings)
    pipeline = get_pipeline(settings)
    layout = ArtifactLayout.from_settings(settings)
    artifacts = load_artifacts(layout, pipeline, evm=settings.evm_proof)
    LOGGER.info(
        "Proving service ready (evaluator=%s, pipeline=%s, workers=%d, vm_precheck=%s, evm_proof=%s)",
        evaluator.engine_id,
        pipeline.name,
        settings.prove_workers,
        settings.vm_precheck,
        settings.evm_proof,
    )
    return ProvingService(
        artifacts,
        pipeline,
        evaluator,
        workers=settings.prove_workers,
        vm_precheck=settings.vm_precheck,
        evm_proof=settings.evm_proof,
    )


def create_app(
    config: dict[str, Any] | None = None,
    settings: Settings | None = None,
    service: ProvingService | None = None,
    stark_backend: StarkBackend | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or Settings.from_env()
    app = Flask(__name__, static_folder=None)

    layout = ArtifactLayout.from_settings(settings)
    app.config.setdefault("ZKUPLC_SETTINGS", settings)
    app.config.setdefault("SERVICE_NAME", settings.service_name)
    app.config.setdefault("MAX_CONTENT_LENGTH", settings.max_body_bytes)
    app.config.setdefault("CORS_ALLOW_ORIGINS", settings.cors_allow_origins)
    app.config.setdefault("JOB_HISTORY_SIZE", settings.job_history)
    app.config.setdefault("STATIC_DIR", str(settings.static_dir))
    app.config.setdefault("AGG_VK_PATH", str(layout.agg_vk))

    if config:
        app.config.update(config)

    app.extensions["proving_service"] = service or build_proving_service(settings)
    app.extensions["stark_backend"] = stark_backend or get_stark_backend(settings)
    app.extensions["job_manager"] = JobManager(int(app.config["JOB_HISTORY_SIZE"]))

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(data_bp, url_prefix="/data")

    _configure_cors(app)
    _configure_static(app)

    @app.errorhandler(APIError)
    def _handle_api_error(err: APIError):  # type: ignore[override]
        return err.to_response()

    @app.errorhandler(ValidationError)
    def _handle_validation(err: ValidationError):  # type: ignore[override]
        details = [
            {"loc": list(item.get("loc", ())), "msg": item.get("msg", ""), "type": item.get("type", "")}
            for item in err.errors()
        ]
        return jsonify({"success": False, "error": "validation error", "details": details}), 400

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_too_large(err: RequestEntityTooLarge):  # type: ignore[override]
        limit = app.config.get("MAX_CONTENT_LENGTH")
        return jsonify({"success": False, "error": f"Request body exceeds {limit} bytes"}), 413

    return app


__all__ = ["build_proving_service", "create_app"]


def _configure_static(app: Flask) -> None:
    static_dir = Path(app.config.get("STATIC_DIR") or "")
    if not app.config.get("STATIC_DIR") or not static_dir.is_dir():
        LOGGER.info("No static directory at %s; serving API only", static_dir)
        return
    root = static_dir.resolve()

    @app.get("/")
    def _static_index():
        return send_from_directory(root, "index.html")

    @app.get("/<path:filename>")
    def _static_file(filename: str):
        try:
            return send_from_directory(root, filename)
        except NotFound:
            raise APIError(404, "not found")


def _configure_cors(app: Flask) -> None:
    origins = _parse_origins(app.config.get("CORS_ALLOW_ORIGINS"))
    if not origins:
        return
    allow_headers = app.config.get("CORS_ALLOW_HEADERS", "Content-Type")
    allow_methods = app.config.get("CORS_ALLOW_METHODS", "GET,POST,OPTIONS")

    def _allowed(origin: str | None) -> bool:
        if not origin:
            return False
        return "*" in origins or origin in origins

    @app.after_request
    def _add_headers(response):  # type: ignore[override]
        origin = request.headers.get("Origin")
        if _allowed(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        elif "*" in origins:
            response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = allow_headers
        response.headers["Access-Control-Allow-Methods"] = allow_methods
        return response

    @app.before_request
    def _handle_preflight():  # type: ignore[override]
        if request.method != "OPTIONS":
            return None
        origin = request.headers.get("Origin")
        resp = make_response("", 204)
        if _allowed(origin):
            resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Headers"] = allow_headers
        resp.headers["Access-Control-Allow-Methods"] = allow_methods
        return resp


def _parse_origins(value: Any) -> list[str] | None:
    if not value:
        return None
    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",") if part.strip()]
        return parts or ["*"]
    if isinstance(value, Iterable):  # type: ignore[arg-type]
        parts = [str(item).strip() for item in value if str(item).strip()]
        return parts or ["*"]
    return ["*"]
