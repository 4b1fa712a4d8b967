"""Recommendation engine - BFS over the friendship graph, ranked by interaction score.

Flow per request:

1. Degree 1: the requester's friends. Never recommended.
2. Degree 2: friends of a sample of degree-1 friends. The first degree-1
   friend that reaches a member becomes its acquaintance.
3. Degree 3: friends of degree-2 members, only when degree 2 cannot fill
   the requested page.
4. Interaction scores are attached, blocked members dropped, and the pool is
   ranked with depth as the primary key and score as the tiebreak.
5. When the ranked pool cannot fill the requested page, a bounded fallback
   list (interaction partners, then recent members) is appended and pages
   are cut from the combined list.

Friend lookups fall back to the relational friendship table when Redis is
down. If neither can be read the page is empty, because recommending without
knowing the requester's friends would suggest existing friends. Other store
outages shrink the result instead of failing it. Blacklist failures always
propagate.
"""

import logging

from friendrec.config import settings
from friendrec.core.exceptions import BlacklistCheckFailed, InvalidRequester, StoreUnavailable
from friendrec.schemas.recommendation import (
    DEPTH_FALLBACK,
    DEPTH_SECOND,
    DEPTH_THIRD,
    Candidate,
    RecommendationPage,
    RecommendedFriend,
)
from friendrec.services.member_source import BlacklistGate, FriendSource, RecentMemberSource
from friendrec.stores.friendship import FriendshipGraphStore
from friendrec.stores.interaction import InteractionScoreStore

logger = logging.getLogger(__name__)

# Extra recent-member fetches allowed when blocked members eat into the fill
MAX_FALLBACK_ROUNDS = 3


def rank_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Depth ascending, then interaction score, then mutual friends, both descending."""
    return sorted(
        candidates,
        key=lambda c: (c.depth, -c.interaction_score, -c.mutual_count, c.member_id),
    )


class RecommendationEngine:
    def __init__(
        self,
        friendships: FriendshipGraphStore,
        interactions: InteractionScoreStore,
        blacklist: BlacklistGate,
        recent_members: RecentMemberSource,
        friend_source: FriendSource | None = None,
        first_degree_sample_size: int | None = None,
        second_degree_sample_size: int | None = None,
        third_degree_sample_size: int | None = None,
        third_degree_expansion_limit: int | None = None,
        max_third_degree_candidates: int | None = None,
        max_fallback_candidates: int | None = None,
    ):
        self.friendships = friendships
        self.interactions = interactions
        self.blacklist = blacklist
        self.recent_members = recent_members
        self.friend_source = friend_source

        self.first_degree_sample_size = first_degree_sample_size or settings.FIRST_DEGREE_SAMPLE_SIZE
        self.second_degree_sample_size = second_degree_sample_size or settings.SECOND_DEGREE_SAMPLE_SIZE
        self.third_degree_sample_size = third_degree_sample_size or settings.THIRD_DEGREE_SAMPLE_SIZE
        self.third_degree_expansion_limit = (
            third_degree_expansion_limit or settings.THIRD_DEGREE_EXPANSION_LIMIT
        )
        self.max_third_degree_candidates = (
            max_third_degree_candidates or settings.MAX_THIRD_DEGREE_CANDIDATES
        )
        self.max_fallback_candidates = max_fallback_candidates or settings.MAX_FALLBACK_CANDIDATES

    async def get_recommendations(
        self, requester_id: int, page: int = 0, page_size: int | None = None
    ) -> RecommendationPage:
        """Build one page of friend recommendations (``page`` is 0-based).

        ``total`` is the length of the list the page was cut from: the ranked
        graph pool, plus the fallback list when the graph pool runs out before
        the end of the requested page. Deep pages past that list are empty.
        """
        page_size = page_size or settings.DEFAULT_PAGE_SIZE
        if page < 0 or page_size <= 0:
            raise ValueError("page must be >= 0 and page_size > 0")

        if not await self.recent_members.exists(requester_id):
            raise InvalidRequester(requester_id)

        first_degree = await self._collect_first_degree(requester_id)
        if first_degree is None:
            return RecommendationPage(items=[], page=page, size=page_size, total=0)
        friends, expand_from = first_degree

        fill_threshold = (page + 1) * page_size
        candidates = await self._collect_candidates(requester_id, friends, expand_from, fill_threshold)

        await self._attach_scores(requester_id, list(candidates.values()))

        blocked = await self._blocked_ids(requester_id, list(candidates))
        ranked = rank_candidates([c for c in candidates.values() if c.member_id not in blocked])

        pool = ranked
        if len(ranked) < fill_threshold:
            excluded = {requester_id} | friends | set(candidates)
            pool = ranked + await self._fallback_fill(requester_id, excluded, self.max_fallback_candidates)

        start = page * page_size
        items = pool[start:start + page_size]

        logger.info(
            "Recommendations for member %s: page=%d, graph=%d, pool=%d, returned=%d",
            requester_id, page, len(ranked), len(pool), len(items),
        )
        return RecommendationPage(
            items=[RecommendedFriend(**c.model_dump()) for c in items],
            page=page,
            size=page_size,
            total=len(pool),
        )

    # --- Graph traversal ---

    async def _collect_first_degree(self, requester_id: int) -> tuple[set[int], list[int]] | None:
        """Return all degree-1 friends (for exclusion) and the subset to expand from.

        None means the friend list could not be read from any source.
        """
        try:
            friends = await self.friendships.get_friends(requester_id)
        except StoreUnavailable as e:
            logger.warning("Degree-1 lookup failed for member %s, reading the database: %s", requester_id, e)
            friends = await self._database_friends(requester_id)
            if friends is None:
                return None
            return friends, sorted(friends)[:self.first_degree_sample_size]

        if len(friends) <= self.first_degree_sample_size:
            return friends, sorted(friends)
        try:
            expand_from = await self.friendships.sample_friends(
                requester_id, self.first_degree_sample_size
            )
        except StoreUnavailable as e:
            logger.warning("Degree-1 sampling failed for member %s: %s", requester_id, e)
            expand_from = set(sorted(friends)[:self.first_degree_sample_size])
        return friends, sorted(expand_from)

    async def _database_friends(self, requester_id: int) -> set[int] | None:
        if self.friend_source is None:
            logger.error("No friendship database configured, no recommendations for member %s", requester_id)
            return None
        try:
            return await self.friend_source.friend_ids(requester_id)
        except StoreUnavailable as e:
            logger.error("Friend list unavailable for member %s, no recommendations: %s", requester_id, e)
            return None

    async def _expand(self, frontier: list[int], sample_size: int) -> list[set[int]]:
        """Friend sets for each frontier member, from Redis or else the database."""
        try:
            return await self.friendships.batch_sample_friends(frontier, sample_size)
        except StoreUnavailable:
            if self.friend_source is None:
                raise
            logger.warning("Redis expansion failed for %d members, reading the database", len(frontier))
            return await self.friend_source.friend_ids_batch(frontier, sample_size)

    async def _collect_candidates(
        self,
        requester_id: int,
        first_degree: set[int],
        expand_from: list[int],
        fill_threshold: int,
    ) -> dict[int, Candidate]:
        """Expand the frontier one level at a time, degree 2 then (if needed) degree 3."""
        candidates: dict[int, Candidate] = {}
        if not expand_from:
            return candidates

        visited = {requester_id} | first_degree
        frontier = expand_from
        levels = [
            (DEPTH_SECOND, self.second_degree_sample_size, None),
            (DEPTH_THIRD, self.third_degree_sample_size, self.max_third_degree_candidates),
        ]

        for depth, sample_size, level_cap in levels:
            if depth == DEPTH_THIRD:
                if len(candidates) >= fill_threshold:
                    break
                frontier = frontier[:self.third_degree_expansion_limit]
            if not frontier:
                break

            try:
                friend_sets = await self._expand(frontier, sample_size)
            except StoreUnavailable as e:
                logger.warning(
                    "Degree-%d expansion failed for member %s, keeping %d candidates: %s",
                    depth, requester_id, len(candidates), e,
                )
                break

            next_frontier: list[int] = []
            for via, friends in zip(frontier, friend_sets):
                for member_id in sorted(friends):
                    if member_id in visited:
                        continue
                    existing = candidates.get(member_id)
                    if existing is not None:
                        if existing.depth == depth:
                            existing.mutual_count += 1
                        continue
                    if level_cap is not None and len(next_frontier) >= level_cap:
                        continue
                    candidates[member_id] = Candidate(
                        member_id=member_id,
                        depth=depth,
                        acquaintance_id=via if depth == DEPTH_SECOND else None,
                        mutual_count=1,
                    )
                    next_frontier.append(member_id)

            visited.update(next_frontier)
            frontier = next_frontier

        return candidates
    # --- Enrichment and filtering ---

    async def _attach_scores(self, requester_id: int, candidates: list[Candidate]) -> None:
        if not candidates:
            return
        try:
            scores = await self.interactions.get_scores_batch(
                requester_id, [c.member_id for c in candidates]
            )
        except StoreUnavailable as e:
            logger.warning("Score lookup failed for member %s, ranking without scores: %s", requester_id, e)
            return
        for candidate, score in zip(candidates, scores):
            candidate.interaction_score = score or 0.0

    async def _blocked_ids(self, requester_id: int, candidate_ids: list[int]) -> set[int]:
        if not candidate_ids:
            return set()
        try:
            return await self.blacklist.blocked_ids(requester_id, candidate_ids)
        except BlacklistCheckFailed:
            raise
        except Exception as e:
            raise BlacklistCheckFailed(requester_id, e) from e

    # --- Fallback ---

    async def _fallback_fill(self, requester_id: int, excluded: set[int], count: int) -> list[Candidate]:
        """Up to ``count`` fallback entries: interaction partners, then the newest members."""
        excluded = set(excluded)
        fill: list[Candidate] = []

        try:
            partners = await self.interactions.get_top_scores(requester_id, count + len(excluded))
        except StoreUnavailable as e:
            logger.warning("Interaction fill skipped for member %s: %s", requester_id, e)
            partners = []

        partner_fill = [
            Candidate(member_id=entry.target_id, depth=DEPTH_FALLBACK, interaction_score=entry.score)
            for entry in partners
            if entry.target_id not in excluded
        ][:count]
        excluded.update(c.member_id for c in partner_fill)
        fill.extend(await self._drop_blocked(requester_id, partner_fill))

        for _ in range(MAX_FALLBACK_ROUNDS):
            missing = count - len(fill)
            if missing <= 0:
                break
            try:
                recent_ids = await self.recent_members.fetch_recent(excluded, missing)
            except StoreUnavailable as e:
                logger.warning("Recent-member fill failed for member %s: %s", requester_id, e)
                break
            if not recent_ids:
                break
            excluded.update(recent_ids)

            recent = [Candidate(member_id=member_id, depth=DEPTH_FALLBACK) for member_id in recent_ids]
            await self._attach_scores(requester_id, recent)
            fill.extend(await self._drop_blocked(requester_id, recent))

        return fill[:count]

    async def _drop_blocked(self, requester_id: int, candidates: list[Candidate]) -> list[Candidate]:
        blocked = await self._blocked_ids(requester_id, [c.member_id for c in candidates])
        return [c for c in candidates if c.member_id not in blocked]
