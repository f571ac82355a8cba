"""Sync API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from integrations.exceptions import (
    ConfigurationError,
    ConnectorAuthError,
    ConnectorError,
    SyncError,
    SyncInProgressError,
    TransactionFailure,
)
from schemas import PerformanceResponse, SyncMetricsResponse, SyncPeriod, SyncRequest, SyncResponse
from services.sync_service import HarvestSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

IN_PROGRESS_DETAIL = "Sync already in progress. Please wait for the current sync to complete."


def get_sync_service(request: Request) -> HarvestSyncService:
    """Get the application's long-lived sync service (overridable in tests)."""
    return request.app.state.sync_service


@router.post("/harvest", response_model=SyncResponse)
async def trigger_harvest_sync(
    body: SyncRequest,
    sync_service: HarvestSyncService = Depends(get_sync_service),
):
    """Fetch Harvest time entries for a date range and store them.

    Raises:
        HTTPException:
            - 409 Conflict: Sync is already in progress
            - 503 Service Unavailable: Harvest credentials are not configured
            - 502 Bad Gateway: Harvest rejected the request or kept failing
            - 500 Internal Server Error: Storing the entries failed
    """
    if sync_service.is_sync_in_progress():
        raise HTTPException(status_code=409, detail=IN_PROGRESS_DETAIL)

    try:
        result = await sync_service.run(
            body.from_date,
            body.to_date,
            body.client_id,
            body.project_id,
            dry_run=body.dry_run,
        )

    except SyncInProgressError:
        raise HTTPException(status_code=409, detail=IN_PROGRESS_DETAIL)

    except ConfigurationError as e:
        logger.warning("Harvest sync not configured: %s", e)
        raise HTTPException(status_code=503, detail=str(e))

    except SyncError as e:
        logger.warning("Harvest sync failed: %s", e)
        if isinstance(e.original, ConnectorAuthError):
            detail = "Harvest authentication failed. Please check your credentials and try again."
        else:
            detail = "Failed to fetch Harvest data. Check the logs for details."
        raise HTTPException(status_code=502, detail=detail)

    except ConnectorError as e:
        logger.warning("Connector error during sync: %s", e)
        raise HTTPException(
            status_code=502,
            detail="A provider error occurred during sync. Check the logs for details.",
        )

    except TransactionFailure:
        # Already logged with traceback by the store
        raise HTTPException(status_code=500, detail="Failed to sync Harvest data")

    except Exception:
        # Safety catch for truly unexpected errors; never expose str(e)
        logger.error("Unexpected error during Harvest sync", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred during sync.",
        )

    metrics = result.metrics
    return SyncResponse(
        entries_processed=result.entries_processed,
        entries_stored=result.entries_stored,
        dry_run=result.dry_run,
        period=SyncPeriod(from_date=result.from_date, to_date=result.to_date),
        performance=PerformanceResponse(
            fetch_time_ms=round(result.fetch_time_ms, 1),
            entries_per_second=result.entries_per_second,
            harvest_api_requests=metrics.harvest_requests if metrics else None,
            db_query_count=metrics.db_query_count if metrics else None,
            cache_hit_rate=result.cache_hit_rate,
        ),
    )


@router.get("/harvest/metrics", response_model=Optional[SyncMetricsResponse])
def get_harvest_sync_metrics(
    sync_service: HarvestSyncService = Depends(get_sync_service),
):
    """Return metrics of the last successful sync, or null if none has run."""
    metrics = sync_service.get_last_sync_metrics()
    if metrics is None:
        return None
    return SyncMetricsResponse.model_validate(metrics)
