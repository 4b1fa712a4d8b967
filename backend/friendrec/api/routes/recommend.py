"""Friend recommendation endpoints."""

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from friendrec.config import settings
from friendrec.core.exceptions import BlacklistCheckFailed, InvalidRequester, StoreUnavailable
from friendrec.db.database import get_db
from friendrec.db.redis import get_redis
from friendrec.schemas.recommendation import RecommendationPage
from friendrec.services.member_source import SqlBlacklistGate, SqlFriendSource, SqlRecentMemberSource
from friendrec.services.recommend_service import RecommendationEngine
from friendrec.stores.friendship import FriendshipGraphStore
from friendrec.stores.interaction import InteractionScoreStore

router = APIRouter()


async def get_recommendation_engine(
    redis: aioredis.Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db),
) -> RecommendationEngine:
    """Wire an engine for this request from the shared Redis client and a DB session."""
    return RecommendationEngine(
        friendships=FriendshipGraphStore(redis),
        interactions=InteractionScoreStore(redis),
        blacklist=SqlBlacklistGate(db),
        recent_members=SqlRecentMemberSource(db),
        friend_source=SqlFriendSource(db),
    )


@router.get("/recommendations/{member_id}", response_model=RecommendationPage)
async def get_recommendations(
    member_id: int,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
):
    """Get a page of recommended friends for a member."""
    try:
        return await engine.get_recommendations(member_id, page=page, page_size=size)
    except InvalidRequester:
        raise HTTPException(status_code=404, detail="Member not found")
    except BlacklistCheckFailed:
        raise HTTPException(status_code=503, detail="Blacklist check unavailable")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Member store unavailable")
