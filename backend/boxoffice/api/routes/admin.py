"""
Admin console API: login, event creation and pricing rules.
Everything except login requires the admin Bearer token.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import AuthenticationError
from boxoffice.core.logging import get_logger
from boxoffice.core.security import create_access_token, get_current_admin, verify_admin_credentials
from boxoffice.db.session import get_db
from boxoffice.schemas.admin import AdminLogin, Token
from boxoffice.schemas.event import EventCreate, EventDetailResponse, PriceAreaCreate, PriceAreaResponse
from boxoffice.services.cache_service import invalidate_event_cache
from boxoffice.services.event_service import create_event
from boxoffice.services.price_area_service import create_price_area, delete_price_area, list_price_areas

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/login", response_model=Token)
async def login(login_data: AdminLogin):
    """Exchange the configured admin credentials for a JWT access token."""
    if not verify_admin_credentials(login_data.email, login_data.password):
        logger.warning("admin_login_failed", email=login_data.email)
        raise AuthenticationError("Invalid email or password")
    logger.info("admin_logged_in", email=login_data.email)
    return Token(access_token=create_access_token({"sub": login_data.email.lower()}))


@router.post("/events", response_model=EventDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    admin: str = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await create_event(db, event_data)
    await invalidate_event_cache()
    return event


@router.get("/events/{event_id}/rules", response_model=list[PriceAreaResponse])
async def list_rules_endpoint(
    event_id: int,
    admin: str = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Pricing rules of an event, highest priority first."""
    return await list_price_areas(db, event_id)


@router.post(
    "/events/{event_id}/rules",
    response_model=PriceAreaResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule_endpoint(
    event_id: int,
    rule_data: PriceAreaCreate,
    admin: str = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    area = await create_price_area(db, event_id, rule_data)
    await invalidate_event_cache()
    return area


@router.delete("/events/{event_id}/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule_endpoint(
    event_id: int,
    rule_id: int,
    admin: str = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await delete_price_area(db, event_id, rule_id)
    await invalidate_event_cache()
