"""
Behavior Analytics API Router.

Identity is optional on every route: requests without a valid bearer token
are attributed to the anonymous user.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from backend.app.core.exceptions import NotFoundError
from backend.app.core.security import get_user_id
from backend.app.schemas.behavior import (
    BehaviorAnalytics,
    BehaviorPattern,
    ProactiveSuggestion,
    TrackActionResponse,
    UserActionCreate,
)
from backend.app.services.behavior_analytics import BehaviorAnalyticsService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_behavior_analytics(request: Request) -> BehaviorAnalyticsService:
    return request.app.state.behavior_analytics


@router.post("/actions", response_model=TrackActionResponse, status_code=201)
async def track_action(
    action: UserActionCreate,
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    """Record one user action. Pattern analysis continues in the background."""
    tracked = await service.track_action(action, user_id)
    return TrackActionResponse(action_id=tracked.id)


@router.get("/analytics", response_model=BehaviorAnalytics)
async def get_analytics(
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    return await service.get_behavior_analytics(user_id)


@router.get("/patterns", response_model=List[BehaviorPattern])
async def list_patterns(
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    return await service.get_patterns(user_id)


@router.get("/suggestions", response_model=List[ProactiveSuggestion])
async def list_suggestions(
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    """Live suggestions only; dismissed, acted-upon and expired ones are left out."""
    return await service.get_suggestions(user_id)


@router.post("/suggestions/{suggestion_id}/dismiss", response_model=ProactiveSuggestion)
async def dismiss_suggestion(
    suggestion_id: str,
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    try:
        return await service.dismiss_suggestion(suggestion_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/suggestions/{suggestion_id}/act", response_model=ProactiveSuggestion)
async def act_on_suggestion(
    suggestion_id: str,
    service: BehaviorAnalyticsService = Depends(get_behavior_analytics),
    user_id: str = Depends(get_user_id),
):
    try:
        return await service.act_on_suggestion(suggestion_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
