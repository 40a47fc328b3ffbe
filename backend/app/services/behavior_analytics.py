"""
Behavior Analytics Service.

Records user actions, mines them for frequent-action patterns and turns strong
patterns into proactive suggestions.

Pattern analysis runs as a detached asyncio task after an action is committed.
The caller of track_action never waits for it and never sees its errors; they
go to the log through the task's done-callback. At most one analysis task runs
per user; actions arriving meanwhile flag a rerun instead of queueing tasks.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import Settings, get_settings
from backend.app.core.database import as_utc, upsert, utcnow
from backend.app.core.exceptions import NotFoundError
from backend.app.models import BehaviorPatternORM, ProactiveSuggestionORM, UserActionORM
from backend.app.schemas.behavior import (
    AppModule,
    AutomationSetup,
    BehaviorAnalytics,
    BehaviorPattern,
    FrequentActionData,
    PatternType,
    ProactiveSuggestion,
    SuggestionPriority,
    SuggestionType,
    UserAction,
    UserActionCreate,
)
from backend.app.services.behavior_metrics import (
    frequent_action_groups,
    pattern_confidence,
    summarize_behavior,
)

logger = logging.getLogger(__name__)

SUGGESTION_ACTED_ACTION = "suggestion_acted"


def _to_user_action(row: UserActionORM) -> UserAction:
    return UserAction(
        id=row.id,
        user_id=row.user_id,
        session_id=row.session_id,
        module=row.module,
        action_type=row.action_type,
        context=row.context or {},
        page_url=row.page_url,
        metadata=row.metadata_ or {},
        timestamp=as_utc(row.created_at),
    )


def _to_pattern(row: BehaviorPatternORM) -> BehaviorPattern:
    return BehaviorPattern(
        id=row.id,
        user_id=row.user_id,
        module=row.module,
        pattern_type=row.pattern_type,
        pattern_data=row.pattern_data,
        confidence=row.confidence,
        frequency=row.frequency,
        last_occurrence=as_utc(row.last_occurrence),
    )


def _to_suggestion(row: ProactiveSuggestionORM) -> ProactiveSuggestion:
    return ProactiveSuggestion(
        id=row.id,
        user_id=row.user_id,
        module=row.module,
        suggestion_type=row.suggestion_type,
        priority=row.priority,
        title=row.title,
        description=row.description,
        suggested_action=row.suggested_action,
        trigger_pattern=row.trigger_pattern,
        expires_at=as_utc(row.expires_at),
        dismissed=row.dismissed,
        dismissed_at=as_utc(row.dismissed_at),
        acted_upon=row.acted_upon,
        acted_upon_at=as_utc(row.acted_upon_at),
        created_at=as_utc(row.created_at),
    )


def _live_suggestion_filter(now):
    return (
        ProactiveSuggestionORM.dismissed.is_(False),
        ProactiveSuggestionORM.acted_upon.is_(False),
        or_(ProactiveSuggestionORM.expires_at.is_(None), ProactiveSuggestionORM.expires_at > now),
    )


class BehaviorAnalyticsService:
    """Action log, pattern mining and suggestion lifecycle for one deployment."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._background_tasks: Set[asyncio.Task] = set()
        self._running: Dict[str, asyncio.Task] = {}
        self._rerun: Set[str] = set()

    @asynccontextmanager
    async def _get_session(self, session: Optional[AsyncSession] = None):
        if session:
            yield session
        else:
            async with self.session_factory() as new_session:
                try:
                    yield new_session
                    await new_session.commit()
                except Exception:
                    await new_session.rollback()
                    raise
                finally:
                    await new_session.close()

    # ------------------------------------------------------------------
    # Action log
    # ------------------------------------------------------------------

    async def track_action(self, action: UserActionCreate, user_id: str) -> UserAction:
        """
        Append one action and kick off background analysis for the user.

        Returns once the row is committed. Failure to persist raises; analysis
        failures do not.
        """
        now = utcnow()
        async with self._get_session() as s:
            row = UserActionORM(
                user_id=user_id,
                session_id=action.session_id or f"session_{uuid.uuid4().hex[:16]}",
                module=action.module.value,
                action_type=action.action_type,
                context=action.context,
                page_url=action.page_url,
                metadata_=action.metadata,
                created_at=now,
            )
            s.add(row)
            await s.flush()
            tracked = _to_user_action(row)

        self._schedule_analysis(user_id)
        return tracked

    # ------------------------------------------------------------------
    # Background analysis
    # ------------------------------------------------------------------

    def _schedule_analysis(self, user_id: str) -> None:
        if user_id in self._running:
            self._rerun.add(user_id)
            return
        task = asyncio.create_task(self._run_analysis(user_id), name=f"behavior-analysis:{user_id}")
        self._running[user_id] = task
        self._background_tasks.add(task)
        task.add_done_callback(lambda t: self._on_analysis_done(user_id, t))

    async def _run_analysis(self, user_id: str) -> None:
        try:
            while True:
                self._rerun.discard(user_id)
                await self.analyze_patterns(user_id)
                await self.generate_proactive_suggestions(user_id)
                if user_id not in self._rerun:
                    break
        finally:
            self._running.pop(user_id, None)

    def _on_analysis_done(self, user_id: str, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.info(f"Behavior analysis for user {user_id} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background behavior analysis failed for user {user_id}: {exc}",
                exc_info=exc,
                extra={"extra_data": {"user_id": user_id}},
            )

    async def wait_for_background(self) -> None:
        """Wait until no analysis task is in flight."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if self._background_tasks:
            logger.info(f"Waiting for {len(self._background_tasks)} behavior analysis task(s)")
        await self.wait_for_background()

    # ------------------------------------------------------------------
    # Patterns and suggestions
    # ------------------------------------------------------------------

    async def analyze_patterns(self, user_id: str) -> List[BehaviorPattern]:
        """
        Recompute frequent_action patterns from the newest actions.

        Each run overwrites the stored pattern for (user, module, frequent_action);
        counts never accumulate across runs. Modules whose actions no longer
        qualify in the current window lose their stored pattern.
        """
        async with self._get_session() as s:
            result = await s.execute(
                select(UserActionORM)
                .where(UserActionORM.user_id == user_id)
                .order_by(UserActionORM.created_at.desc())
                .limit(self.settings.pattern_window_size)
            )
            actions = [_to_user_action(r) for r in reversed(result.scalars().all())]
            if len(actions) < self.settings.pattern_min_actions:
                return []

            groups = frequent_action_groups(actions, self.settings.frequent_action_threshold)
            now = utcnow()
            patterns = []
            for module, (action_type, count) in groups.items():
                last_seen = max(
                    a.timestamp for a in actions if a.module == module and a.action_type == action_type
                )
                row = await upsert(
                    s,
                    BehaviorPatternORM,
                    {
                        "user_id": user_id,
                        "module": module,
                        "pattern_type": PatternType.FREQUENT_ACTION.value,
                        "pattern_data": FrequentActionData(action_type=action_type, count=count).model_dump(),
                        "confidence": pattern_confidence(count),
                        "frequency": count,
                        "last_occurrence": last_seen,
                        "updated_at": now,
                    },
                    conflict_keys=("user_id", "module", "pattern_type"),
                )
                patterns.append(_to_pattern(row))

            stale = await s.execute(
                delete(BehaviorPatternORM)
                .where(
                    BehaviorPatternORM.user_id == user_id,
                    BehaviorPatternORM.pattern_type == PatternType.FREQUENT_ACTION.value,
                    BehaviorPatternORM.module.notin_(list(groups)),
                )
                .execution_options(synchronize_session=False)
            )
            if stale.rowcount:
                logger.info(f"Dropped {stale.rowcount} stale pattern(s) for user {user_id}")

        logger.debug(f"Analyzed {len(actions)} actions for user {user_id}: {len(patterns)} pattern(s)")
        return patterns

    async def _has_live_suggestion(self, session: AsyncSession, user_id: str, module: str, suggestion_type: SuggestionType, now) -> bool:
        result = await session.execute(
            select(ProactiveSuggestionORM.id)
            .where(
                ProactiveSuggestionORM.user_id == user_id,
                ProactiveSuggestionORM.module == module,
                ProactiveSuggestionORM.suggestion_type == suggestion_type.value,
                *_live_suggestion_filter(now),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def generate_proactive_suggestions(self, user_id: str) -> List[ProactiveSuggestion]:
        """
        Create automation suggestions for strong patterns that have no live suggestion yet.

        The pattern rows are locked for the transaction (FOR UPDATE, a no-op on
        SQLite), so two processes generating for the same user serialize and the
        second one sees the first one's suggestions.
        """
        created: List[ProactiveSuggestion] = []
        async with self._get_session() as s:
            result = await s.execute(
                select(BehaviorPatternORM)
                .where(
                    BehaviorPatternORM.user_id == user_id,
                    BehaviorPatternORM.pattern_type == PatternType.FREQUENT_ACTION.value,
                    BehaviorPatternORM.frequency > self.settings.suggestion_frequency_threshold,
                )
                .order_by(BehaviorPatternORM.module)
                .with_for_update()
            )
            now = utcnow()
            for pattern in result.scalars().all():
                if await self._has_live_suggestion(s, user_id, pattern.module, SuggestionType.OPTIMIZATION, now):
                    continue

                action_type = (pattern.pattern_data or {}).get("action_type", "unknown")
                row = ProactiveSuggestionORM(
                    user_id=user_id,
                    module=pattern.module,
                    suggestion_type=SuggestionType.OPTIMIZATION.value,
                    priority=SuggestionPriority.MEDIUM.value,
                    title="Automation Opportunity Detected",
                    description=(
                        f'You frequently perform "{action_type}" in {pattern.module}. '
                        f"Consider setting up automation to save time."
                    ),
                    suggested_action=AutomationSetup(module=pattern.module, action=action_type).model_dump(),
                    trigger_pattern=pattern.id,
                    expires_at=now + timedelta(days=self.settings.suggestion_expiry_days),
                    dismissed=False,
                    acted_upon=False,
                    created_at=now,
                )
                s.add(row)
                await s.flush()
                created.append(_to_suggestion(row))

        if created:
            logger.info(f"Created {len(created)} proactive suggestion(s) for user {user_id}")
        return created

    async def get_suggestions(self, user_id: str) -> List[ProactiveSuggestion]:
        """Live suggestions, highest priority first, newest first within a priority."""
        async with self._get_session() as s:
            result = await s.execute(
                select(ProactiveSuggestionORM)
                .where(ProactiveSuggestionORM.user_id == user_id, *_live_suggestion_filter(utcnow()))
                .order_by(ProactiveSuggestionORM.created_at.desc())
            )
            suggestions = [_to_suggestion(r) for r in result.scalars().all()]
        # stable sort keeps newest-first inside each priority
        return sorted(suggestions, key=lambda x: x.priority.rank, reverse=True)

    async def get_patterns(self, user_id: str, session: Optional[AsyncSession] = None) -> List[BehaviorPattern]:
        async with self._get_session(session) as s:
            result = await s.execute(
                select(BehaviorPatternORM)
                .where(BehaviorPatternORM.user_id == user_id)
                .order_by(BehaviorPatternORM.frequency.desc())
            )
            return [_to_pattern(r) for r in result.scalars().all()]

    async def get_behavior_analytics(self, user_id: str) -> BehaviorAnalytics:
        since = utcnow() - timedelta(days=self.settings.analytics_window_days)
        async with self._get_session() as s:
            result = await s.execute(
                select(UserActionORM)
                .where(UserActionORM.user_id == user_id, UserActionORM.created_at >= since)
                .order_by(UserActionORM.created_at)
            )
            actions = [_to_user_action(r) for r in result.scalars().all()]
            patterns = await self.get_patterns(user_id, session=s)

        return summarize_behavior(actions, patterns, self.settings)

    # ------------------------------------------------------------------
    # Suggestion lifecycle
    # ------------------------------------------------------------------

    async def _get_user_suggestion(self, session: AsyncSession, suggestion_id: str, user_id: str) -> ProactiveSuggestionORM:
        result = await session.execute(
            select(ProactiveSuggestionORM)
            .where(ProactiveSuggestionORM.id == suggestion_id, ProactiveSuggestionORM.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Suggestion {suggestion_id} not found")
        return row

    async def _close_suggestion(self, session: AsyncSession, suggestion_id: str, user_id: str, **values) -> int:
        """Move a live suggestion to a terminal state. Returns the number of rows changed (0 or 1)."""
        result = await session.execute(
            update(ProactiveSuggestionORM)
            .where(
                ProactiveSuggestionORM.id == suggestion_id,
                ProactiveSuggestionORM.user_id == user_id,
                ProactiveSuggestionORM.dismissed.is_(False),
                ProactiveSuggestionORM.acted_upon.is_(False),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def dismiss_suggestion(self, suggestion_id: str, user_id: str) -> ProactiveSuggestion:
        """Dismiss a suggestion. Repeating the call on a closed suggestion changes nothing."""
        async with self._get_session() as s:
            await self._get_user_suggestion(s, suggestion_id, user_id)
            changed = await self._close_suggestion(s, suggestion_id, user_id, dismissed=True, dismissed_at=utcnow())
            if changed:
                logger.info(f"Suggestion {suggestion_id} dismissed by {user_id}")
            return _to_suggestion(await self._get_user_suggestion(s, suggestion_id, user_id))

    async def act_on_suggestion(self, suggestion_id: str, user_id: str) -> ProactiveSuggestion:
        """Mark a suggestion acted upon and record the acceptance in the action log."""
        async with self._get_session() as s:
            await self._get_user_suggestion(s, suggestion_id, user_id)
            now = utcnow()
            changed = await self._close_suggestion(s, suggestion_id, user_id, acted_upon=True, acted_upon_at=now)
            if changed:
                s.add(UserActionORM(
                    user_id=user_id,
                    session_id=f"suggestion_{int(now.timestamp() * 1000)}",
                    module=AppModule.PROACTIVE_INTELLIGENCE.value,
                    action_type=SUGGESTION_ACTED_ACTION,
                    context={"suggestion_id": suggestion_id},
                    metadata_={},
                    created_at=now,
                ))
                logger.info(f"Suggestion {suggestion_id} acted upon by {user_id}")
            return _to_suggestion(await self._get_user_suggestion(s, suggestion_id, user_id))

    # ------------------------------------------------------------------
    # Periodic re-analysis
    # ------------------------------------------------------------------

    async def reanalyze_active_users(self, since_seconds: int) -> int:
        """
        Re-run analysis for every user with actions in the last `since_seconds`.

        Goes through the same per-user task as track_action, so a user already
        being analysed gets a rerun flag instead of a second concurrent run.
        Waits for those tasks; their failures are logged by the done-callback.
        """
        since = utcnow() - timedelta(seconds=since_seconds)
        async with self._get_session() as s:
            result = await s.execute(
                select(UserActionORM.user_id).where(UserActionORM.created_at >= since).distinct()
            )
            user_ids = list(result.scalars().all())

        tasks = []
        for user_id in user_ids:
            self._schedule_analysis(user_id)
            tasks.append(self._running[user_id])
        await asyncio.gather(*tasks, return_exceptions=True)

        return len(user_ids)
