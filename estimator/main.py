"""Application entrypoint.

This file wires the JSON API routes, maps domain errors to HTTP responses and
runs startup actions (migrations, default seeding, backup scheduling) for the
initiative estimator service.
"""

from __future__ import annotations

import logging
import platform
import time
from datetime import date

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from estimator import audit, backups, services_catalog, services_estimates
from estimator.config import settings
from estimator.database import SessionLocal, get_db, run_migrations, sqlite_database_path
from estimator.errors import EstimatorError
from estimator.journal import render_journal
from estimator.models import EstimationFactor, ResourceType, SystemSetting
from estimator.schemas import (
    AuditEntryView,
    BackupFrequency,
    BackupOut,
    CategoryCreate,
    CategoryOut,
    CommentCreate,
    CommentEntry,
    DropdownOptionIn,
    DropdownOptionOut,
    DropdownOptionRename,
    DuplicateRequest,
    EstimatePreview,
    EstimatePreviewRequest,
    EstimationFactorCreate,
    EstimationFactorOut,
    ImportResult,
    InitiativeCreate,
    InitiativeImportRow,
    InitiativeOut,
    ResourceTypeCreate,
    ResourceTypeOut,
    ShirtSizeAuditOut,
    ShirtSizeIn,
)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, debug=settings.debug)

TSV_MEDIA_TYPE = "text/tab-separated-values"
JournalView = list[CommentEntry | AuditEntryView]
_STARTED_MONOTONIC = time.monotonic()


@app.exception_handler(EstimatorError)
def estimator_error_handler(request: Request, exc: EstimatorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": jsonable_encoder(exc.errors())})


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_migrations()
    with SessionLocal() as db:
        services_catalog.seed_defaults(db)
        frequency = services_catalog.get_backup_frequency(db)
    if settings.backups_enabled and sqlite_database_path() is not None:
        backups.scheduler.start(frequency)
    logger.info("%s started (%s)", settings.app_name, settings.environment)


@app.on_event("shutdown")
def shutdown() -> None:
    backups.scheduler.stop()


# ---------------------------------------------------------------------------
# Resource types
# ---------------------------------------------------------------------------


@app.get("/api/resource-types", response_model=list[ResourceTypeOut])
def list_resource_types(db: Session = Depends(get_db)):
    return db.scalars(select(ResourceType).order_by(ResourceType.name)).all()


@app.get("/api/resource-types/{resource_type_id}", response_model=ResourceTypeOut)
def get_resource_type(resource_type_id: str, db: Session = Depends(get_db)):
    return services_catalog.get_resource_type(db, resource_type_id)


@app.post("/api/resource-types", response_model=ResourceTypeOut, status_code=status.HTTP_201_CREATED)
def create_resource_type(payload: ResourceTypeCreate, db: Session = Depends(get_db)):
    return services_catalog.create_resource_type(db, payload)


@app.put("/api/resource-types/{resource_type_id}", response_model=ResourceTypeOut)
def update_resource_type(resource_type_id: str, payload: ResourceTypeCreate, db: Session = Depends(get_db)):
    return services_catalog.update_resource_type(db, resource_type_id, payload)


@app.delete("/api/resource-types/{resource_type_id}")
def delete_resource_type(resource_type_id: str, db: Session = Depends(get_db)):
    services_catalog.delete_resource_type(db, resource_type_id)
    return {"ok": True}


@app.get("/api/resource-types/{resource_type_id}/audit", response_model=JournalView)
def resource_type_audit(resource_type_id: str, db: Session = Depends(get_db)):
    resource_type = services_catalog.get_resource_type(db, resource_type_id)
    return render_journal(resource_type.journal_entries, audit.RESOURCE_TYPE_TRACKED_KEYS)


# ---------------------------------------------------------------------------
# Estimation factors
# ---------------------------------------------------------------------------


@app.get("/api/estimation-factors", response_model=list[EstimationFactorOut])
def list_factors(db: Session = Depends(get_db)):
    return db.scalars(select(EstimationFactor).order_by(EstimationFactor.name)).all()


@app.get("/api/estimation-factors/{factor_id}", response_model=EstimationFactorOut)
def get_factor(factor_id: str, db: Session = Depends(get_db)):
    return services_catalog.get_factor(db, factor_id)


@app.post("/api/estimation-factors", response_model=EstimationFactorOut, status_code=status.HTTP_201_CREATED)
def create_factor(payload: EstimationFactorCreate, db: Session = Depends(get_db)):
    return services_catalog.create_factor(db, payload)


@app.put("/api/estimation-factors/{factor_id}", response_model=EstimationFactorOut)
def update_factor(factor_id: str, payload: EstimationFactorCreate, db: Session = Depends(get_db)):
    return services_catalog.update_factor(db, factor_id, payload)


@app.post(
    "/api/estimation-factors/{factor_id}/duplicate",
    response_model=EstimationFactorOut,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_factor(factor_id: str, payload: DuplicateRequest | None = None, db: Session = Depends(get_db)):
    return services_catalog.duplicate_factor(db, factor_id, payload.name if payload else None)


@app.delete("/api/estimation-factors/{factor_id}")
def delete_factor(factor_id: str, db: Session = Depends(get_db)):
    services_catalog.delete_factor(db, factor_id)
    return {"ok": True}


@app.get("/api/estimation-factors/{factor_id}/audit", response_model=JournalView)
def factor_audit(factor_id: str, db: Session = Depends(get_db)):
    factor = services_catalog.get_factor(db, factor_id)
    return render_journal(factor.journal_entries, audit.FACTOR_TRACKED_KEYS, services_catalog.resource_names(db))


# ---------------------------------------------------------------------------
# Initiatives
# ---------------------------------------------------------------------------


def _tsv_response(content: str, stem: str) -> PlainTextResponse:
    filename = f"{stem}_{date.today().isoformat()}.tsv"
    return PlainTextResponse(
        content,
        media_type=TSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/initiatives", response_model=list[InitiativeOut])
def list_initiatives(status_filter: str | None = Query(None, alias="status"), db: Session = Depends(get_db)):
    return services_estimates.list_initiatives(db, status_filter)


# Registered before /{initiative_id} so the literal paths win.
@app.get("/api/initiatives/export")
def export_initiatives(db: Session = Depends(get_db)):
    return _tsv_response(services_estimates.export_initiatives_tsv(db), "initiatives_export")


@app.get("/api/initiatives/export/resource-view")
def export_resource_view(db: Session = Depends(get_db)):
    return _tsv_response(services_estimates.export_resource_view_tsv(db), "initiatives_resource_view_export")


@app.post("/api/initiatives/import", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
def import_initiatives(rows: list[InitiativeImportRow], db: Session = Depends(get_db)):
    imported, skipped = services_estimates.import_initiatives(db, rows)
    return ImportResult(importedCount=imported, skippedCount=skipped)


@app.get("/api/initiatives/{initiative_id}", response_model=InitiativeOut)
def get_initiative(initiative_id: int, db: Session = Depends(get_db)):
    return services_estimates.get_initiative(db, initiative_id)


@app.post("/api/initiatives", response_model=InitiativeOut, status_code=status.HTTP_201_CREATED)
def create_initiative(payload: InitiativeCreate, db: Session = Depends(get_db)):
    return services_estimates.create_initiative(db, payload)


@app.put("/api/initiatives/{initiative_id}", response_model=InitiativeOut)
def update_initiative(initiative_id: int, payload: InitiativeCreate, db: Session = Depends(get_db)):
    return services_estimates.update_initiative(db, initiative_id, payload)


@app.post(
    "/api/initiatives/{initiative_id}/duplicate",
    response_model=InitiativeOut,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_initiative(initiative_id: int, payload: DuplicateRequest | None = None, db: Session = Depends(get_db)):
    return services_estimates.duplicate_initiative(db, initiative_id, payload.name if payload else None)


@app.post("/api/initiatives/{initiative_id}/journal", response_model=InitiativeOut)
def add_initiative_comment(initiative_id: int, payload: CommentCreate, db: Session = Depends(get_db)):
    return services_estimates.add_comment(db, initiative_id, payload.text)


@app.get("/api/initiatives/{initiative_id}/audit", response_model=JournalView)
def initiative_audit(initiative_id: int, db: Session = Depends(get_db)):
    return services_estimates.initiative_journal(db, initiative_id)


@app.delete("/api/initiatives/{initiative_id}")
def delete_initiative(initiative_id: int, db: Session = Depends(get_db)):
    services_estimates.delete_initiative(db, initiative_id)
    return {"ok": True}


@app.post("/api/estimates/preview", response_model=EstimatePreview)
def preview_estimate(payload: EstimatePreviewRequest, db: Session = Depends(get_db)):
    return services_estimates.preview_estimate(db, payload.selected_factors, payload.manual_resources)


# ---------------------------------------------------------------------------
# Shirt sizes
# ---------------------------------------------------------------------------


@app.get("/api/shirt-sizes", response_model=list[ShirtSizeIn])
def list_shirt_sizes(db: Session = Depends(get_db)):
    return services_catalog.list_shirt_sizes(db)


@app.put("/api/shirt-sizes", response_model=list[ShirtSizeIn])
def update_shirt_sizes(payload: list[ShirtSizeIn], db: Session = Depends(get_db)):
    return services_catalog.update_shirt_sizes(db, payload)


@app.get("/api/shirt-sizes/audit", response_model=list[ShirtSizeAuditOut])
def shirt_size_audit(db: Session = Depends(get_db)):
    return services_catalog.list_shirt_size_audit(db)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(query: str | None = None, db: Session = Depends(get_db)):
    return services_catalog.list_categories(db, query)


@app.post("/api/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    return services_catalog.create_category(db, payload.name)


@app.post("/api/categories/recalculate", response_model=list[CategoryOut])
def recalculate_categories(db: Session = Depends(get_db)):
    return services_catalog.recalculate_category_usage(db)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def rename_category(category_id: int, payload: CategoryCreate, db: Session = Depends(get_db)):
    return services_catalog.rename_category(db, category_id, payload.name)


@app.post("/api/categories/{category_id}/increment", response_model=CategoryOut)
def increment_category(category_id: int, db: Session = Depends(get_db)):
    return services_catalog.increment_category(db, category_id)


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    services_catalog.delete_category(db, category_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Dropdown options
# ---------------------------------------------------------------------------


@app.get("/api/dropdown-options")
def all_dropdown_options(db: Session = Depends(get_db)) -> dict[str, list[str]]:
    return services_catalog.dropdown_options_by_category(db)


@app.get("/api/dropdown-options/{category}", response_model=list[DropdownOptionOut])
def dropdown_options(category: str, db: Session = Depends(get_db)):
    return services_catalog.list_dropdown_options(db, category)


@app.post("/api/dropdown-options", response_model=DropdownOptionOut, status_code=status.HTTP_201_CREATED)
def add_dropdown_option(payload: DropdownOptionIn, db: Session = Depends(get_db)):
    return services_catalog.add_dropdown_option(db, payload)


@app.put("/api/dropdown-options", response_model=DropdownOptionOut)
def rename_dropdown_option(payload: DropdownOptionRename, db: Session = Depends(get_db)):
    return services_catalog.rename_dropdown_option(db, payload)


@app.delete("/api/dropdown-options/{category}/{value}")
def delete_dropdown_option(category: str, value: str, db: Session = Depends(get_db)):
    services_catalog.delete_dropdown_option(db, category, value)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Backups and system
# ---------------------------------------------------------------------------


@app.get("/api/backup/frequency", response_model=BackupFrequency)
def get_backup_frequency(db: Session = Depends(get_db)):
    return BackupFrequency(frequency=services_catalog.get_backup_frequency(db))


@app.put("/api/backup/frequency", response_model=BackupFrequency)
def update_backup_frequency(payload: BackupFrequency, db: Session = Depends(get_db)):
    services_catalog.set_setting(db, services_catalog.BACKUP_FREQUENCY_KEY, str(payload.frequency))
    if backups.scheduler.running:
        backups.scheduler.reschedule(payload.frequency)
    logger.info("Backup frequency set to %s minutes", payload.frequency)
    return payload


@app.get("/api/backup/list", response_model=list[BackupOut])
def list_backups():
    return [BackupOut(filename=b.filename, size=b.size, created_at=b.created_at) for b in backups.list_backups()]


@app.post("/api/backup/create", status_code=status.HTTP_201_CREATED)
def create_backup():
    path = backups.backup_database()
    return {"message": "Backup created successfully", "backup": path.name}


@app.post("/api/backup/restore/{filename}")
def restore_backup(filename: str):
    backups.restore_database(filename)
    return {"message": "Database restored successfully", "backup": filename}


@app.get("/api/system/build-info")
@app.get("/api/system/info")
def system_info(db: Session = Depends(get_db)):
    system_settings = {row.key: row.value for row in db.scalars(select(SystemSetting))}
    return {
        "buildInfo": {"build_number": settings.build_number, "created_at": settings.build_created_at},
        "appName": settings.app_name,
        "environment": settings.environment,
        "systemSettings": system_settings,
        "serverInfo": {
            "pythonVersion": platform.python_version(),
            "platform": platform.platform(),
            "uptime": round(time.monotonic() - _STARTED_MONOTONIC, 3),
        },
    }


@app.get("/health")
def healthcheck():
    return {"status": "ok", "date": date.today().isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("estimator.main:app", host=settings.host, port=settings.port)
