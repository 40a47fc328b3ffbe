"""
Behavior Metrics.

Pure scoring and pattern-detection functions over a user's action log.
No I/O: callers load actions and patterns and pass them in.
"""
from collections import Counter, OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from backend.app.core.config import Settings, get_settings
from backend.app.schemas.behavior import (
    BehaviorAnalytics,
    BehaviorPattern,
    HourlyActivity,
    KnowledgeGap,
    ModuleUsage,
    OptimizationOpportunity,
    UserAction,
)

# Modules every crew member is expected to use; low usage flags a knowledge gap
REFERENCE_MODULES = [
    "inventory", "equipment", "maintenance", "finance",
    "procurement", "safety", "crew", "navigation",
]

# Occurrences at which a frequent action reaches full confidence
CONFIDENCE_SATURATION = 10

EMPTY_EFFICIENCY_BASELINE = 50
CONSISTENCY_BASELINE = 20
TOP_MODULES_LIMIT = 10


def pattern_confidence(count: int) -> float:
    return min(count / CONFIDENCE_SATURATION, 1.0)


def frequent_action_groups(actions: Sequence[UserAction], threshold: int) -> Dict[str, Tuple[str, int]]:
    """
    Count (module, action_type) pairs and keep those at or above threshold.

    Returns module -> (action_type, count). Patterns are keyed per module, so
    only the most frequent qualifying action type of a module is kept; ties
    go to the pair seen first.
    """
    counts: Counter = Counter((a.module, a.action_type) for a in actions)
    best: Dict[str, Tuple[str, int]] = OrderedDict()
    for (module, action_type), count in counts.items():
        if count < threshold:
            continue
        if module not in best or count > best[module][1]:
            best[module] = (action_type, count)
    return best


def _chronological(actions: Sequence[UserAction]) -> List[UserAction]:
    return sorted(actions, key=lambda a: a.timestamp)


def average_seconds_between(actions: Sequence[UserAction]) -> float:
    if len(actions) < 2:
        return 0.0
    ordered = _chronological(actions)
    span = (ordered[-1].timestamp - ordered[0].timestamp).total_seconds()
    return span / (len(ordered) - 1)


def calculate_module_efficiency(module_actions: Sequence[UserAction]) -> int:
    """
    Score one module's usage out of 100.

    diversity: up to 40 for five or more distinct action types
    timing:    60 minus the average idle gap in minutes, floored at 0
    volume:    up to 20 for ten or more actions
    """
    if not module_actions:
        return 100

    unique_types = len({a.action_type for a in module_actions})
    avg_gap_minutes = average_seconds_between(module_actions) / 60

    diversity_score = min(unique_types / 5, 1) * 40
    timing_score = max(60 - avg_gap_minutes, 0)
    volume_score = min(len(module_actions) / 10, 1) * 20

    return min(round(diversity_score + timing_score + volume_score), 100)


def hourly_activity(actions: Sequence[UserAction]) -> List[HourlyActivity]:
    """24-bucket histogram of action timestamps (UTC hours)."""
    buckets = [0] * 24
    for action in actions:
        buckets[action.timestamp.hour] += 1
    return [HourlyActivity(hour=hour, activity_level=count) for hour, count in enumerate(buckets)]


def overall_efficiency_score(actions: Sequence[UserAction], patterns: Sequence[BehaviorPattern]) -> int:
    if not actions:
        return EMPTY_EFFICIENCY_BASELINE

    unique_modules = len({a.module for a in actions})
    unique_action_types = len({a.action_type for a in actions})

    diversity_score = min(unique_modules * 10 + unique_action_types * 5, 50)
    pattern_score = min(len(patterns) * 5, 30)

    return min(diversity_score + pattern_score + CONSISTENCY_BASELINE, 100)


def count_module_switches(actions: Sequence[UserAction]) -> int:
    ordered = _chronological(actions)
    return sum(1 for prev, cur in zip(ordered, ordered[1:]) if prev.module != cur.module)


def identify_optimization_opportunities(
    actions: Sequence[UserAction],
    settings: Optional[Settings] = None,
) -> List[OptimizationOpportunity]:
    settings = settings or get_settings()
    opportunities: List[OptimizationOpportunity] = []

    counts: Counter = Counter((a.module, a.action_type) for a in actions)
    for (module, action_type), count in counts.most_common():
        if count <= settings.automation_threshold:
            break
        opportunities.append(OptimizationOpportunity(
            type="Automation Opportunity",
            description=(
                f'You\'ve performed "{action_type}" {count} times in {module}. '
                f"Consider setting up automation."
            ),
            potential_time_saved=round(count * settings.automation_minutes_per_action),
            implementation_effort="medium",
        ))

    switches = count_module_switches(actions)
    if switches >= settings.module_switch_threshold:
        opportunities.append(OptimizationOpportunity(
            type="Workflow Optimization",
            description=(
                f"{switches} module switches detected. "
                f"Consider using cross-module features."
            ),
            potential_time_saved=15,
            implementation_effort="low",
        ))

    return opportunities[:settings.max_opportunities]


def is_error_action(action: UserAction) -> bool:
    return (
        "error" in action.action_type.lower()
        or bool(action.context.get("error"))
        or bool(action.metadata.get("error"))
    )


def identify_knowledge_gaps(
    actions: Sequence[UserAction],
    settings: Optional[Settings] = None,
) -> List[KnowledgeGap]:
    settings = settings or get_settings()
    gaps: List[KnowledgeGap] = []

    error_count = sum(1 for a in actions if is_error_action(a))
    if error_count > settings.error_gap_threshold:
        gaps.append(KnowledgeGap(
            area="Error Resolution",
            evidence=[f"{error_count} error-related actions detected"],
            suggested_learning=[
                "Review system documentation",
                "Practice common workflows",
                "Use guided tutorials",
            ],
        ))

    usage = Counter(a.module for a in actions)
    underutilized = [m for m in REFERENCE_MODULES if usage.get(m, 0) < settings.underutilized_threshold]
    if len(underutilized) > settings.underutilized_min_modules:
        gaps.append(KnowledgeGap(
            area="Module Exploration",
            evidence=[
                f"Limited usage of {len(underutilized)} available modules: {', '.join(underutilized)}"
            ],
            suggested_learning=[
                "Explore unused modules",
                "Try SmartScan features",
                "Review module capabilities",
            ],
        ))

    return gaps


def summarize_behavior(
    actions: Sequence[UserAction],
    patterns: Sequence[BehaviorPattern],
    settings: Optional[Settings] = None,
) -> BehaviorAnalytics:
    """Build the read-only analytics summary for one user's trailing window."""
    settings = settings or get_settings()

    by_module: Dict[str, List[UserAction]] = {}
    for action in actions:
        by_module.setdefault(action.module or "unknown", []).append(action)

    most_used = sorted(
        (
            ModuleUsage(
                module=module,
                usage_count=len(module_actions),
                efficiency=calculate_module_efficiency(module_actions),
            )
            for module, module_actions in by_module.items()
        ),
        key=lambda m: m.usage_count,
        reverse=True,
    )[:TOP_MODULES_LIMIT]

    return BehaviorAnalytics(
        user_efficiency_score=overall_efficiency_score(actions, patterns),
        total_actions=len(actions),
        window_days=settings.analytics_window_days,
        most_used_modules=most_used,
        workflow_patterns=list(patterns),
        time_patterns=hourly_activity(actions),
        optimization_opportunities=identify_optimization_opportunities(actions, settings),
        knowledge_gaps=identify_knowledge_gaps(actions, settings),
    )
