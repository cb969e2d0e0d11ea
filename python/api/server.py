"""
FastAPI Distributor Onboarding API Server

REST endpoints for distributor application intake, review, account
provisioning and credential management.

Usage:
    uvicorn api.server:create_app --factory --host 127.0.0.1 --port 8000
"""

import os
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, time as dt_time, timezone
from typing import Dict, Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from pydantic import ValidationError as SchemaValidationError
from starlette.datastructures import UploadFile

from api.middleware import (
    RequestLoggingMiddleware,
    setup_cors,
    setup_exception_handlers,
    validation_errors_map,
)
from api.models import (
    ApiResponse,
    ApplicationOut,
    ApplicationStatsOut,
    ApplicationSubmission,
    ApplicationSummaryOut,
    CategoryCreateRequest,
    CategoryOut,
    CredentialsOut,
    CredentialsRequest,
    DistributorOut,
    ErrorResponse,
    HealthResponse,
    PaginationMeta,
    ProductOut,
    StatusUpdateRequest,
    dump,
)
from api.permissions import Operation, Principal, optional_principal, require
from api.uploads import DocumentStore
from config_manager import ConfigManager, LoggingConfig, get_config
from database.application_service import ApplicationService, IntakeRecord
from database.category_service import CategoryService
from database.connection import DatabaseSessionProvider, DatabaseSettings
from database.credential_service import CredentialService, CredentialUpdate
from database.models import ApplicationStatus, DocumentKind, UserRole
from database.repositories import ApplicationFilter
from errors import AuthorizationError, ValidationError
from notifications import ApprovalNotice, NotificationDispatcher, create_dispatcher
from security_logger import SecurityLogger

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    401: {"model": ErrorResponse, "description": "Missing or invalid API key"},
    403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Duplicate entry"},
}


def configure_logging(config: LoggingConfig) -> None:
    """Configure root logging once from the logging config section."""
    handlers = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
        handlers=handlers or None,
    )


router = APIRouter()


# ============================================
# DEPENDENCIES
# ============================================

def get_provider(request: Request) -> DatabaseSessionProvider:
    return request.app.state.db


def get_app_config(request: Request) -> ConfigManager:
    return request.app.state.config


def _parse_date(value: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Accept ISO dates or datetimes; a bare date as dateTo covers the whole day."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date: {name}", errors={name: ["Expected ISO 8601 date"]})
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), dt_time.max)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============================================
# APPLICATIONS
# ============================================

async def _read_submission(request: Request) -> Tuple[dict, Dict[DocumentKind, UploadFile]]:
    """Split a JSON or multipart submission into payload and document parts."""
    files: Dict[DocumentKind, UploadFile] = {}
    content_type = request.headers.get("content-type", "")

    try:
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            raw = None
            for key, value in form.multi_items():
                if isinstance(value, UploadFile):
                    try:
                        kind = DocumentKind(key)
                    except ValueError:
                        raise ValidationError(
                            f"Unexpected file field: {key}",
                            code="UNEXPECTED_FILE",
                            errors={key: ["Unexpected file"]}
                        )
                    if kind in files:
                        raise ValidationError(
                            f"Only one file allowed for {key}",
                            code="UNEXPECTED_FILE",
                            errors={key: ["Only one file allowed"]}
                        )
                    if value.filename:
                        files[kind] = value
                elif key == "data":
                    raw = value
            if raw is None:
                raise ValidationError("Missing application data", code="INVALID_DATA_FORMAT")
            payload = json.loads(raw)
        else:
            payload = await request.json()
    except ValueError:
        raise ValidationError("Application data is not valid JSON", code="INVALID_DATA_FORMAT")

    if not isinstance(payload, dict):
        raise ValidationError("Application data must be a JSON object", code="INVALID_DATA_FORMAT")
    return payload, files


def _persist_submission(
    request: Request,
    record: IntakeRecord,
    stored: Dict[DocumentKind, str],
    principal: Optional[Principal]
) -> dict:
    provider: DatabaseSessionProvider = request.app.state.db
    with provider.get_unit_of_work() as uow:
        service = ApplicationService(uow.session, request.app.state.config)
        application = service.submit(
            record,
            documents=stored,
            created_by_id=principal.user_id if principal else None
        )
        uow.commit()
        return dump(ApplicationOut.model_validate(application))


@router.post(
    "/applications/submit",
    status_code=201,
    response_model=ApiResponse,
    responses={400: ERROR_RESPONSES[400], 413: {"model": ErrorResponse, "description": "File too large"}},
    summary="Submit a distributor application",
    description="JSON body, or multipart/form-data with a 'data' JSON field and optional document files",
)
async def submit_application(
    request: Request,
    principal: Optional[Principal] = Depends(optional_principal),
):
    """Validate, store documents, then persist the application in one transaction."""
    payload, files = await _read_submission(request)
    try:
        submission = ApplicationSubmission.model_validate(payload)
    except SchemaValidationError as e:
        raise ValidationError("Validation failed", errors=validation_errors_map(e.errors()))

    record = submission.to_intake_record()
    ApplicationService.validate_record(record)

    store: DocumentStore = request.app.state.documents
    stored = await store.save_all(files)
    try:
        data = await run_in_threadpool(_persist_submission, request, record, stored, principal)
    except Exception:
        store.discard(stored.values())
        raise

    return ApiResponse(message="Application submitted successfully", data=data)


@router.get(
    "/applications",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="List applications",
)
def list_applications(
    status: Optional[ApplicationStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    reviewed_by: Optional[str] = Query(None, alias="reviewedBy"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.LIST_APPLICATIONS)),
):
    """Paginated, filtered list. Sales representatives see only their own."""
    limit = min(limit or config.pagination.default_limit, config.pagination.max_limit)
    criteria = ApplicationFilter(
        status=status,
        date_from=_parse_date(date_from, "dateFrom"),
        date_to=_parse_date(date_to, "dateTo", end_of_day=True),
        search=search,
        reviewed_by=reviewed_by,
        visible_to=principal.visibility_scope,
    )

    with provider.get_unit_of_work() as uow:
        items, total = ApplicationService(uow.session, config).list(
            criteria, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
        data = [dump(ApplicationSummaryOut.model_validate(a)) for a in items]

    return ApiResponse(
        message="Applications retrieved successfully",
        data=data,
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get(
    "/applications/stats",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Application statistics",
)
def application_stats(
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.VIEW_STATS)),
):
    with provider.get_unit_of_work() as uow:
        stats = ApplicationService(uow.session, config).stats()
        data = dump(ApplicationStatsOut(
            total=stats["total"],
            by_status=stats["by_status"],
            recent=[ApplicationSummaryOut.model_validate(a) for a in stats["recent"]],
            by_month=stats["by_month"],
        ))
    return ApiResponse(message="Statistics retrieved successfully", data=data)


@router.get(
    "/applications/{application_id}",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Get an application",
)
def get_application(
    application_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.VIEW_APPLICATION)),
):
    with provider.get_unit_of_work() as uow:
        application = ApplicationService(uow.session, config).get(
            application_id, visible_to=principal.visibility_scope
        )
        data = dump(ApplicationOut.model_validate(application))
    return ApiResponse(message="Application retrieved successfully", data=data)


@router.put(
    "/applications/{application_id}/status",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Change application status",
    description="Approving provisions the distributor account in the same transaction",
)
def update_application_status(
    application_id: UUID,
    body: StatusUpdateRequest,
    request: Request,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.UPDATE_STATUS)),
):
    """Status change, provisioning and history commit together; email follows."""
    notice = None
    with provider.get_unit_of_work() as uow:
        result = ApplicationService(uow.session, config).update_status(
            application_id,
            body.status,
            reviewer_id=principal.user_id,
            reviewer_name=principal.name,
            review_notes=body.review_notes,
            visible_to=principal.visibility_scope,
        )
        uow.commit()

        data = {"application": dump(ApplicationOut.model_validate(result.application))}
        if result.provisioning is not None:
            account = result.provisioning.user
            data["distributor"] = {
                "id": str(account.id),
                "username": account.username,
                "email": account.email,
                "created": result.provisioning.created,
            }
        if result.changed and body.status == ApplicationStatus.APPROVED:
            notice = ApprovalNotice.from_status_change(result)

    if notice is not None:
        dispatcher: NotificationDispatcher = request.app.state.notifier
        dispatcher.dispatch_approval(notice)

    message = "Application status updated successfully" if result.changed else "Application status unchanged"
    return ApiResponse(message=message, data=data)


@router.delete(
    "/applications/{application_id}",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel a pending application",
)
def cancel_application(
    application_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.CANCEL_APPLICATION)),
):
    with provider.get_unit_of_work() as uow:
        ApplicationService(uow.session, config).cancel(
            application_id, actor_id=principal.user_id, actor_name=principal.name
        )
        uow.commit()
    return ApiResponse(message="Application cancelled successfully")


# ============================================
# DISTRIBUTORS
# ============================================

@router.get(
    "/distributors/by-application/{application_id}",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Find the distributor provisioned from an application",
)
def distributor_by_application(
    application_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.FIND_BY_APPLICATION)),
):
    with provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, config.provisioning).find_by_application(application_id)
        data = dump(DistributorOut.model_validate(user))
    return ApiResponse(message="Distributor retrieved successfully", data=data)


@router.get(
    "/distributors/{distributor_id}/credentials",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Get distributor credentials (password masked)",
)
def get_credentials(
    distributor_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.VIEW_CREDENTIALS)),
):
    with provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, config.provisioning).get_credentials(distributor_id)
        data = dump(CredentialsOut.from_user(user))
    return ApiResponse(message="Credentials retrieved successfully", data=data)


@router.post(
    "/distributors/{distributor_id}/credentials",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Replace distributor credentials and categories",
)
def save_credentials(
    distributor_id: UUID,
    body: CredentialsRequest,
    request: Request,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.SAVE_CREDENTIALS)),
):
    """Login fields and category assignments are replaced atomically."""
    with provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, config.provisioning).save_credentials(
            distributor_id,
            CredentialUpdate(
                username=body.username,
                email=body.email,
                password=body.password,
                categories=body.categories,
            ),
            assigned_by=principal.user_id,
        )
        uow.commit()
        data = dump(CredentialsOut.from_user(user))

    security: SecurityLogger = request.app.state.security
    security.log_credential_change(
        str(distributor_id), principal.user_id, "saved",
        getattr(request.state, "request_id", "")
    )
    return ApiResponse(message="Credentials saved successfully", data=data)


@router.delete(
    "/distributors/{distributor_id}/credentials",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Reset distributor credentials",
)
def reset_credentials(
    distributor_id: UUID,
    request: Request,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.RESET_CREDENTIALS)),
):
    with provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, config.provisioning).reset_credentials(distributor_id)
        uow.commit()
        data = dump(CredentialsOut.from_user(user))

    security: SecurityLogger = request.app.state.security
    security.log_credential_change(
        str(distributor_id), principal.user_id, "reset",
        getattr(request.state, "request_id", "")
    )
    return ApiResponse(message="Credentials reset successfully", data=data)


def _set_active(provider, config, distributor_id: UUID, active: bool) -> dict:
    with provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, config.provisioning).set_active(distributor_id, active)
        uow.commit()
        return dump(DistributorOut.model_validate(user))


@router.patch(
    "/distributors/{distributor_id}/activate",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Activate a distributor",
)
def activate_distributor(
    distributor_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.TOGGLE_ACTIVATION)),
):
    data = _set_active(provider, config, distributor_id, True)
    return ApiResponse(message="Distributor activated successfully", data=data)


@router.patch(
    "/distributors/{distributor_id}/deactivate",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Deactivate a distributor",
)
def deactivate_distributor(
    distributor_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.TOGGLE_ACTIVATION)),
):
    data = _set_active(provider, config, distributor_id, False)
    return ApiResponse(message="Distributor deactivated successfully", data=data)


@router.get(
    "/distributors/{distributor_id}/products",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Products available to a distributor",
)
def distributor_products(
    distributor_id: UUID,
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_app_config),
    principal: Principal = Depends(require(Operation.VIEW_DISTRIBUTOR_PRODUCTS)),
):
    if principal.role == UserRole.DISTRIBUTOR and principal.user_id != str(distributor_id):
        raise AuthorizationError(
            "Distributors may only view their own products",
            code="INSUFFICIENT_PERMISSIONS"
        )
    with provider.get_unit_of_work() as uow:
        products = CredentialService(uow.session, config.provisioning).assigned_products(distributor_id)
        data = [dump(ProductOut.model_validate(p)) for p in products]
    return ApiResponse(message="Products retrieved successfully", data=data)


# ============================================
# CATEGORIES
# ============================================

@router.get(
    "/categories",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="List active categories",
)
def list_categories(
    provider: DatabaseSessionProvider = Depends(get_provider),
    principal: Principal = Depends(require(Operation.LIST_CATEGORIES)),
):
    with provider.get_unit_of_work() as uow:
        rows = CategoryService(uow.session).list(active_only=True)
        data = [
            dump(CategoryOut.model_validate(category).model_copy(update={"product_count": count}))
            for category, count in rows
        ]
    return ApiResponse(message="Categories retrieved successfully", data=data)


@router.post(
    "/categories",
    status_code=201,
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
    summary="Create a category",
)
def create_category(
    body: CategoryCreateRequest,
    provider: DatabaseSessionProvider = Depends(get_provider),
    principal: Principal = Depends(require(Operation.CREATE_CATEGORY)),
):
    with provider.get_unit_of_work() as uow:
        category = CategoryService(uow.session).create(
            body.title,
            description=body.description,
            slug=body.slug,
            sort_order=body.sort_order,
        )
        uow.commit()
        data = dump(CategoryOut.model_validate(category))
    return ApiResponse(message="Category created successfully", data=data)


# ============================================
# HEALTH
# ============================================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Service status and database connectivity",
)
def health_check(request: Request):
    provider: DatabaseSessionProvider = request.app.state.db
    config: ConfigManager = request.app.state.config

    database_ok = provider.health_check()
    uptime = None
    started_at = getattr(request.app.state, "started_at", None)
    if started_at is not None:
        uptime = int((datetime.now(timezone.utc) - started_at).total_seconds())

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database="connected" if database_ok else "unavailable",
        version=API_VERSION,
        environment=config.app.environment,
        uptime_seconds=uptime,
    )


# ============================================
# APPLICATION FACTORY
# ============================================

def create_app(
    config: Optional[ConfigManager] = None,
    db_provider: Optional[DatabaseSessionProvider] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration (defaults to get_config())
        db_provider: Database provider (defaults to one built from config)
        dispatcher: Notification dispatcher (defaults to Mailjet or logging sender)
    """
    config = config or get_config()
    configure_logging(config.logging)

    provider = db_provider or DatabaseSessionProvider(DatabaseSettings.from_config(config.database))
    notifier = dispatcher or create_dispatcher(config.notifications)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s (environment=%s)", config.app.name, config.app.environment)
        await run_in_threadpool(provider.open)
        app.state.started_at = datetime.now(timezone.utc)
        logger.info("API ready")
        yield
        logger.info("Shutting down %s...", config.app.name)
        notifier.shutdown(wait=True)
        provider.close()

    prefix = config.app.api_prefix
    app = FastAPI(
        title=config.app.name,
        description="Distributor application intake, review and account provisioning",
        version=API_VERSION,
        docs_url=f"{prefix}/docs",
        redoc_url=f"{prefix}/redoc",
        openapi_url=f"{prefix}/openapi.json",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.db = provider
    app.state.notifier = notifier
    app.state.documents = DocumentStore(config.uploads)
    app.state.security = SecurityLogger(
        log_dir=config.logging.security_log_dir,
        enable_file=config.logging.security_log_file,
    )

    setup_cors(app, config.app.cors_origins)
    app.add_middleware(RequestLoggingMiddleware)
    setup_exception_handlers(app)
    app.include_router(router, prefix=prefix)

    @app.get("/", include_in_schema=False)
    async def root():
        """Redirect root to API documentation."""
        return RedirectResponse(url=f"{prefix}/docs")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host=API_HOST, port=API_PORT)
