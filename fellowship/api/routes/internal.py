# fellowship/api/routes/internal.py
from datetime import datetime
from http import HTTPStatus

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.api.dependencies.internal_auth import verify_internal_api_key
from fellowship.db.session import get_db
from fellowship.schemas.study_group import NextOccurrenceRefreshSummary
from fellowship.services.group_scheduler import localize, refresh_next_occurrences

router = APIRouter(
    prefix="/internal",
    tags=["Internal"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post(
    "/refresh-next-occurrences",
    response_model=NextOccurrenceRefreshSummary,
    status_code=HTTPStatus.OK,
    summary="Roll next_occurrence forward for all recurring groups",
    description=(
        "Recomputes `next_occurrence` for every active recurring group whose stored "
        "value is in the past (or missing). Groups past their recurrence end date "
        "get `next_occurrence = null`.\n\n"
        "Intended to be called from a cron job and protected via the "
        "`X-Internal-Api-Key` header when configured."
    ),
    responses={
        200: {
            "description": "Refresh executed. A summary is returned.",
            "content": {
                "application/json": {
                    "example": {
                        "groups_evaluated": 4,
                        "groups_updated": 2,
                        "run_at": "2026-10-17T06:00:00Z",
                    }
                }
            },
        },
        401: {"description": "Missing or invalid internal API key (if configured)."},
    },
)
async def trigger_next_occurrence_refresh(
    as_of: datetime | None = Query(
        default=None,
        description=(
            "Reference instant for the projection (ISO 8601). Naive values are UTC. "
            "Defaults to the current time."
        ),
        examples=["2026-10-17T06:00:00Z"],
    ),
    db: AsyncSession = Depends(get_db),
) -> NextOccurrenceRefreshSummary:
    now = localize(as_of, "UTC") if as_of is not None else None
    return await refresh_next_occurrences(db, now=now)
