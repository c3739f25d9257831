from __future__ import annotations

import logging
from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .services.exceptions import ServiceError
from .services.auth import current_user, require_admin
from .services.settings import get_settings, update_settings, settings_dict
from .services.users import recompute_counters
from .services.stats import (
    leaderboard,
    personal_stats,
    recent_months,
    resolve_strategy,
    window_for,
)
from .storage import invalidate_cache, load_users, list_matches
from .config import get_count_draws, get_leaderboard_ranking, get_log_level
from .models import User, MATCH_STATUSES
from .routes.users import router as users_router
from .routes.matches import router as matches_router
from .routes.admin import router as admin_router

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ensure cached data does not leak across reloads
invalidate_cache()

app = FastAPI()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.errors()})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(users_router)
app.include_router(matches_router)
app.include_router(admin_router)


def _monthly_board(month: str | None, ranking: str | None, include_inactive: bool) -> dict:
    try:
        start, end = window_for(month)
        strategy = resolve_strategy(ranking, get_leaderboard_ranking())
    except ValueError as e:
        raise ServiceError(str(e), 400)
    entries = leaderboard(
        list_matches(start, end),
        load_users(),
        start,
        end,
        strategy=strategy,
        include_inactive=include_inactive,
        count_draws=get_count_draws(),
    )
    return {
        "month": f"{start.year}-{start.month:02d}",
        "ranking": strategy.value,
        "entries": [
            dict(e.to_dict(), rank=rank) for rank, e in enumerate(entries, start=1)
        ],
    }


@app.get("/leaderboard")
def leaderboard_api(
    month: str | None = None,
    ranking: str | None = None,
    include_inactive: bool = False,
    user: User = Depends(current_user),
):
    """Monthly leaderboard, ranked by the requested strategy."""
    return _monthly_board(month, ranking, include_inactive)


@app.get("/me/statistics")
def my_statistics(month: str | None = None, user: User = Depends(current_user)):
    try:
        start, end = window_for(month)
    except ValueError as e:
        raise ServiceError(str(e), 400)
    data = personal_stats(
        list_matches(start, end, user_id=user.user_id),
        load_users(),
        user.user_id,
        start,
        end,
        count_draws=get_count_draws(),
    )
    data["month"] = f"{start.year}-{start.month:02d}"
    return data


@app.get("/admin/overview")
def admin_overview(admin: User = Depends(require_admin)):
    users = load_users().values()
    matches = list_matches()
    by_status = {status: 0 for status in MATCH_STATUSES}
    for m in matches:
        by_status[m.status] = by_status.get(m.status, 0) + 1
    return {
        "users": len(users),
        "admins": sum(1 for u in users if u.is_admin),
        "disabled_users": sum(1 for u in users if not u.is_enabled),
        "matches": len(matches),
        "matches_by_status": by_status,
    }


@app.get("/admin/leaderboard")
def admin_leaderboard(
    month: str | None = None,
    ranking: str | None = None,
    include_inactive: bool = False,
    admin: User = Depends(require_admin),
):
    data = _monthly_board(month, ranking, include_inactive)
    data["months"] = recent_months()
    return data


@app.post("/admin/recompute")
def admin_recompute(admin: User = Depends(require_admin)):
    updated = recompute_counters()
    logger.info("%s triggered counter recompute", admin.user_id)
    return {"status": "ok", "updated": updated}


class SettingsUpdate(BaseModel):
    allow_registration: bool | None = None
    match_approval_required: bool | None = None
    max_matches_per_day: int | None = None


@app.get("/admin/settings")
def read_settings(admin: User = Depends(require_admin)):
    return settings_dict(get_settings())


@app.put("/admin/settings")
def write_settings(data: SettingsUpdate, admin: User = Depends(require_admin)):
    settings = update_settings(
        allow_registration=data.allow_registration,
        match_approval_required=data.match_approval_required,
        max_matches_per_day=data.max_matches_per_day,
    )
    return settings_dict(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
