from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, is_dataclass
from typing import Any

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from permisoria.application.services.actor_service import ActorService
from permisoria.application.services.audit_service import AuditService
from permisoria.application.services.certificate_service import CertificateService, certificate_payload
from permisoria.application.services.project_service import ProjectService
from permisoria.application.services.verification_service import (
    VerificationService,
    attempt_payload,
    document_verification_payload,
)
from permisoria.core.config import AppPaths, AppSettings, load_settings
from permisoria.core.errors import PermisoriaError, UnauthorizedError, ValidationError
from permisoria.core.time import now_utc_iso
from permisoria.domain.models.actor import Actor
from permisoria.infrastructure.db.repos.activity_log_repo import ActivityLogRepo
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.certificate_repo import CertificateRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.repos.verification_repo import VerificationRepo

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _error_body(message: str, details: Any = None) -> dict[str, Any]:
    return {"ok": False, "error": message, "details": details}


def create_app(paths: AppPaths, settings: AppSettings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="Permisoria", version="0.1.0")

    project_service = ProjectService(paths)
    project_service.init_project()

    def get_owner_repo() -> OwnerRepo:
        return OwnerRepo(paths.db_path)

    def get_verification_repo() -> VerificationRepo:
        return VerificationRepo(paths.db_path)

    def get_certificate_repo() -> CertificateRepo:
        return CertificateRepo(paths.db_path)

    def get_audit_service() -> AuditService:
        return AuditService(ActivityLogRepo(paths.db_path))

    def get_certificate_service() -> CertificateService:
        return CertificateService(
            owner_repo=get_owner_repo(),
            verification_repo=get_verification_repo(),
            certificate_repo=get_certificate_repo(),
            audit_service=get_audit_service(),
            settings=settings,
        )

    def get_verification_service() -> VerificationService:
        return VerificationService(
            owner_repo=get_owner_repo(),
            verification_repo=get_verification_repo(),
            audit_service=get_audit_service(),
            certificate_service=get_certificate_service(),
            certificate_repo=get_certificate_repo(),
            settings=settings,
        )

    def current_actor(authorization: str | None = Header(default=None)) -> Actor:
        token = _bearer_token(authorization)
        if token is None:
            raise UnauthorizedError("Authentication required")
        return ActorService(ActorRepo(paths.db_path)).get_current_actor(token)

    @app.exception_handler(PermisoriaError)
    async def handle_permisoria_error(_request: Request, exc: PermisoriaError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc)
            details = None if settings.is_production else exc.details
        else:
            details = exc.details
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc), _jsonable(details)))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("Invalid request", details))

    @app.exception_handler(sqlite3.OperationalError)
    async def handle_storage_error(_request: Request, exc: sqlite3.OperationalError) -> JSONResponse:
        logger.warning("Storage temporarily unavailable: %s", exc)
        details = None if settings.is_production else str(exc)
        return JSONResponse(
            status_code=503,
            content=_error_body("Storage temporarily unavailable, please retry", details),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error")
        details = None if settings.is_production else repr(exc)
        return JSONResponse(status_code=500, content=_error_body("Internal server error", details))

    @app.get("/api/health")
    def api_health() -> dict[str, Any]:
        return {
            "ok": True,
            "time": now_utc_iso(),
            "initialized": project_service.is_initialized(),
            "environment": settings.environment,
        }

    @app.post("/api/owners/{owner_id}/verification")
    def api_start_or_save_verification(
        owner_id: str,
        payload: dict[str, Any] | None = Body(default=None),
        actor: Actor = Depends(current_actor),
    ) -> Any:
        service = get_verification_service()
        if payload and payload.get("isDraft") is True:
            if "draftData" not in payload:
                raise ValidationError("draftData is required when isDraft is true")
            result = service.save_draft(owner_id, actor.id, payload["draftData"])
            return {"ok": True, **result}

        attempt = service.create_verification_attempt(owner_id, actor.id)
        return JSONResponse(status_code=201, content={"ok": True, "attempt": attempt_payload(attempt)})

    @app.put("/api/owners/{owner_id}/verification")
    def api_submit_decision(
        owner_id: str,
        payload: dict[str, Any] = Body(...),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        result = get_verification_service().submit_verification_decision(owner_id, actor.id, payload)
        return {"ok": True, **result}

    @app.get("/api/owners/{owner_id}/verification")
    def api_verification_status(
        owner_id: str,
        include_documents: bool = Query(default=False, alias="includeDocuments"),
        include_history: bool = Query(default=False, alias="includeHistory"),
        include_draft: bool = Query(default=True, alias="includeDraft"),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        status = get_verification_service().get_verification_status(
            owner_id,
            actor.id,
            include_documents=include_documents,
            include_history=include_history,
            include_draft=include_draft,
        )
        return {"ok": True, **status}

    @app.post("/api/owners/{owner_id}/verification/documents")
    def api_update_document_verification(
        owner_id: str,
        payload: dict[str, Any] = Body(...),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        record = get_verification_service().update_document_verification(owner_id, actor.id, payload)
        return {"ok": True, "documentVerification": document_verification_payload(record)}

    @app.get("/api/owners/{owner_id}/verification/documents")
    def api_verification_documents(
        owner_id: str,
        verification_id: str = Query(..., alias="verificationId"),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        result = get_verification_service().get_verification_documents(owner_id, verification_id, actor.id)
        return {"ok": True, **result}

    @app.get("/api/owners/{owner_id}/verification/certificate")
    def api_get_certificate(
        owner_id: str,
        verification_id: str | None = Query(default=None, alias="verificationId"),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        certificate = get_certificate_service().get_or_generate_certificate(
            owner_id,
            actor.id,
            verification_id=verification_id,
        )
        return {"ok": True, "certificate": certificate_payload(certificate)}

    @app.delete("/api/owners/{owner_id}/verification/certificate")
    def api_revoke_certificate(
        owner_id: str,
        certificate_id: str = Query(..., alias="certificateId"),
        reason: str = Query(default=""),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        certificate = get_certificate_service().revoke_certificate(
            certificate_id,
            actor.id,
            reason,
            owner_id=owner_id,
        )
        return {"ok": True, "certificate": certificate_payload(certificate)}

    @app.get("/api/owners/{owner_id}/activity-logs")
    def api_activity_logs(
        owner_id: str,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1),
        entity_type: str | None = Query(default=None, alias="entityType"),
        action: str | None = Query(default=None),
        start_date: str | None = Query(default=None, alias="startDate"),
        end_date: str | None = Query(default=None, alias="endDate"),
        actor: Actor = Depends(current_actor),
    ) -> dict[str, Any]:
        result = get_verification_service().get_activity_logs(
            owner_id,
            actor.id,
            page=page,
            limit=limit,
            entity_type=entity_type,
            action=action,
            start_date=start_date,
            end_date=end_date,
        )
        return {"ok": True, **result}

    @app.get("/api/certificates/verify/{verification_hash}")
    def api_verify_certificate(verification_hash: str) -> dict[str, Any]:
        return {"ok": True, **get_certificate_service().verify_certificate_by_hash(verification_hash)}

    @app.get("/api/certificates/{certificate_id}")
    def api_certificate_detail(certificate_id: str, actor: Actor = Depends(current_actor)) -> dict[str, Any]:
        return {"ok": True, "certificate": get_certificate_service().get_certificate(certificate_id, actor.id)}

    return app
