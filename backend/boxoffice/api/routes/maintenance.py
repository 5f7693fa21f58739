"""
Sweep trigger for external schedulers (cron).
When CRON_SECRET is set, callers must send it as a Bearer token.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import AuthorizationError
from boxoffice.core.security import bearer_scheme, tokens_match
from boxoffice.db.session import get_session_factory
from boxoffice.schemas.admin import SweepResponse
from boxoffice.services.sweeper import run_sweep

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    secret = get_settings().CRON_SECRET
    if not secret:
        return
    supplied = credentials.credentials if credentials else None
    if not tokens_match(supplied, secret):
        raise AuthorizationError()


@router.api_route("/sweep", methods=["GET", "POST"], response_model=SweepResponse)
async def sweep_endpoint(
    _: None = Depends(require_cron_secret),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Release expired holds and expire abandoned orders now."""
    result = await run_sweep(session_factory, trigger="manual")
    return SweepResponse(released_locks=result.released_locks, expired_orders=result.expired_orders)
