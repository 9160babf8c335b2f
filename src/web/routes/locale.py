"""Locale preference, detection history and backend reconciliation routes."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from locale_storage.maintenance import MaintenanceOptions
from locale_storage.models import StorageKey, to_plain
from locale_storage.query import QueryConditions
from web.deps import get_manager
from web.models import (
    DetectionCreate,
    HistoryImport,
    MaintenanceRequest,
    OperationResponse,
    OverrideUpdate,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/locale", tags=["locale"])


def _set_cookies(response: Response, manager, *keys: StorageKey):
    for key in keys:
        header = manager.cookie.to_header(key)
        if header:
            response.headers.append("set-cookie", header)


@router.get("/history")
async def list_history(
    limit: int = Query(default=10, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    locale: str | None = None,
    source: str | None = None,
    min_confidence: float | None = Query(default=None, ge=0, le=1),
    manager=Depends(get_manager),
):
    result = manager.query_detections(
        QueryConditions(
            locale=locale,
            source=source,
            min_confidence=min_confidence,
            offset=offset,
            limit=limit,
        )
    )
    return to_plain(result)


@router.post("/history", response_model=OperationResponse, status_code=201)
async def add_detection(body: DetectionCreate, manager=Depends(get_manager)):
    result = manager.add_detection_record(
        body.locale, body.source, body.confidence, body.metadata
    )
    if not result.success:
        logger.warning("locale.add_detection_rejected", error=result.error)
        raise HTTPException(status_code=422, detail=result.error)
    logger.info("locale.detection_added", locale=body.locale, source=body.source)
    return result.to_dict()


@router.get("/history/summary")
async def history_summary(manager=Depends(get_manager)):
    summary = manager.get_history_summary()
    summary["cleanup"] = manager.needs_cleanup()
    return summary


@router.get("/history/search")
async def search_history(q: str = Query(..., min_length=1), manager=Depends(get_manager)):
    return to_plain(manager.search_detections(q))


@router.get("/history/export", response_model=OperationResponse)
async def export_history(manager=Depends(get_manager)):
    result = manager.export_history()
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    return result.to_dict()


@router.post("/history/import", response_model=OperationResponse)
async def import_history(body: HistoryImport, manager=Depends(get_manager)):
    result = manager.import_history(body.data)
    if not result.success:
        raise HTTPException(status_code=422, detail=result.error)
    logger.info("locale.history_imported", records=result.data)
    return result.to_dict()


@router.delete("/history", response_model=OperationResponse)
async def clear_history(manager=Depends(get_manager)):
    result = manager.clear_all_history()
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    return result.to_dict()


@router.get("/stats")
async def get_stats(days: int = Query(default=7, ge=1, le=365), manager=Depends(get_manager)):
    return {
        "stats": manager.get_detection_stats(),
        "trends": manager.get_detection_trends(days),
        "insights": manager.generate_history_insights(),
        "performance": manager.get_performance_metrics(),
    }


@router.get("/preference", response_model=OperationResponse)
async def get_preference(manager=Depends(get_manager)):
    result = manager.get_user_preference()
    payload = result.to_dict()
    payload["data"] = {
        "preference": to_plain(result.data),
        "override": manager.get_user_override(),
    }
    return payload


@router.put("/override", response_model=OperationResponse)
async def set_override(body: OverrideUpdate, response: Response, manager=Depends(get_manager)):
    result = manager.set_user_override(body.locale)
    if not result.success:
        raise HTTPException(status_code=422, detail=result.error)
    _set_cookies(response, manager, StorageKey.LOCALE_PREFERENCE, StorageKey.USER_LOCALE_OVERRIDE)
    logger.info("locale.override_set", locale=body.locale)
    return result.to_dict()


@router.delete("/override", response_model=OperationResponse)
async def clear_override(response: Response, manager=Depends(get_manager)):
    result = manager.clear_user_override()
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    response.delete_cookie(StorageKey.USER_LOCALE_OVERRIDE.value, path="/")
    return result.to_dict()


@router.get("/consistency")
async def consistency(manager=Depends(get_manager)):
    return {
        "integrity": manager.validate_storage_integrity().to_dict(),
        "consistency": manager.check_data_consistency().to_dict(),
        "sync_issues": manager.reconciler.validate_storage_sync(),
        "summary": manager.get_validation_summary(),
    }


@router.post("/sync", response_model=OperationResponse)
async def fix_sync(response: Response, manager=Depends(get_manager)):
    result = manager.fix_sync_issues()
    if result.data["fixed_issues"]:
        _set_cookies(
            response, manager, StorageKey.LOCALE_PREFERENCE, StorageKey.USER_LOCALE_OVERRIDE
        )
    return result.to_dict()


@router.post("/maintenance")
async def run_maintenance(body: MaintenanceRequest, manager=Depends(get_manager)):
    report = manager.perform_maintenance(MaintenanceOptions(**body.model_dump()))
    logger.info(
        "locale.maintenance_run",
        total=report["total_operations"],
        successful=report["successful_operations"],
    )
    return report


@router.get("/maintenance/recommendations")
async def maintenance_recommendations(manager=Depends(get_manager)):
    return manager.get_maintenance_recommendations()


@router.get("/health")
async def storage_health(manager=Depends(get_manager)):
    return {
        "health": manager.perform_health_check(),
        "storage": manager.get_storage_stats(),
    }


@router.get("/events")
async def recent_events(
    limit: int = Query(default=20, ge=1, le=100), manager=Depends(get_manager)
):
    return [e.to_dict() for e in manager.bus.get_event_history(limit)]
