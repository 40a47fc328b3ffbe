"""
Behavior Analytics Schemas.

Pattern payloads and suggested actions are tagged unions: the `kind` field of
the payload must agree with the enclosing pattern_type / suggestion_type.
"""
from enum import Enum
from typing import Annotated, Optional, List, Dict, Any, Literal, Union
from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class AppModule(str, Enum):
    """Domain modules a tracked action can belong to."""
    MAINTENANCE = "maintenance"
    INVENTORY = "inventory"
    EQUIPMENT = "equipment"
    CREW = "crew"
    FINANCE = "finance"
    PROCUREMENT = "procurement"
    COMPLIANCE = "compliance"
    SAFETY = "safety"
    NAVIGATION = "navigation"
    CLAIMS_REPAIRS = "claims_repairs"
    DOCUMENTS = "documents"
    ANALYTICS = "analytics"
    DASHBOARD = "dashboard"
    PROACTIVE_INTELLIGENCE = "proactive_intelligence"


class PatternType(str, Enum):
    FREQUENT_ACTION = "frequent_action"
    WORKFLOW_SEQUENCE = "workflow_sequence"
    TIME_BASED = "time_based"
    CONTEXT_SWITCH = "context_switch"


class SuggestionType(str, Enum):
    ACTION = "action"
    WORKFLOW = "workflow"
    OPTIMIZATION = "optimization"
    ALERT = "alert"


class SuggestionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    SuggestionPriority.LOW: 0,
    SuggestionPriority.MEDIUM: 1,
    SuggestionPriority.HIGH: 2,
    SuggestionPriority.CRITICAL: 3,
}


# --- Actions ---------------------------------------------------------------

class UserActionCreate(BaseModel):
    action_type: str = Field(min_length=1, max_length=100)
    module: AppModule
    context: Dict[str, Any] = {}
    session_id: Optional[str] = Field(None, max_length=100)
    page_url: Optional[str] = Field(None, max_length=500)
    metadata: Dict[str, Any] = {}


class UserAction(BaseModel):
    id: str
    user_id: str
    session_id: str
    module: str
    action_type: str
    context: Dict[str, Any] = {}
    page_url: Optional[str] = None
    metadata: Dict[str, Any] = {}
    timestamp: datetime


class TrackActionResponse(BaseModel):
    success: bool = True
    action_id: str


# --- Patterns --------------------------------------------------------------

class FrequentActionData(BaseModel):
    kind: Literal["frequent_action"] = "frequent_action"
    action_type: str
    count: int


class WorkflowSequenceData(BaseModel):
    kind: Literal["workflow_sequence"] = "workflow_sequence"
    steps: List[str]


class TimeBasedData(BaseModel):
    kind: Literal["time_based"] = "time_based"
    peak_hours: List[int]


class ContextSwitchData(BaseModel):
    kind: Literal["context_switch"] = "context_switch"
    from_module: str
    to_module: str
    switches: int


PatternData = Annotated[
    Union[FrequentActionData, WorkflowSequenceData, TimeBasedData, ContextSwitchData],
    Field(discriminator="kind"),
]


class BehaviorPattern(BaseModel):
    id: str
    user_id: str
    module: str
    pattern_type: PatternType
    pattern_data: PatternData
    confidence: float = Field(ge=0.0, le=1.0)
    frequency: int
    last_occurrence: datetime

    @model_validator(mode="after")
    def _payload_matches_type(self):
        if self.pattern_data.kind != self.pattern_type.value:
            raise ValueError(
                f"pattern_data kind '{self.pattern_data.kind}' does not match pattern_type '{self.pattern_type.value}'"
            )
        return self


# --- Suggestions -----------------------------------------------------------

class ModuleAction(BaseModel):
    kind: Literal["perform_action"] = "perform_action"
    module: str
    action: str


class WorkflowShortcut(BaseModel):
    kind: Literal["open_workflow"] = "open_workflow"
    modules: List[str]


class AutomationSetup(BaseModel):
    kind: Literal["setup_automation"] = "setup_automation"
    module: str
    action: str


class AlertReview(BaseModel):
    kind: Literal["review_alert"] = "review_alert"
    message: str
    reference_id: Optional[str] = None


SuggestedAction = Annotated[
    Union[ModuleAction, WorkflowShortcut, AutomationSetup, AlertReview],
    Field(discriminator="kind"),
]

SUGGESTED_ACTION_KIND = {
    SuggestionType.ACTION: "perform_action",
    SuggestionType.WORKFLOW: "open_workflow",
    SuggestionType.OPTIMIZATION: "setup_automation",
    SuggestionType.ALERT: "review_alert",
}


class ProactiveSuggestion(BaseModel):
    id: str
    user_id: str
    module: str
    suggestion_type: SuggestionType
    priority: SuggestionPriority
    title: str
    description: str
    suggested_action: SuggestedAction
    trigger_pattern: Optional[str] = None
    expires_at: Optional[datetime] = None
    dismissed: bool = False
    dismissed_at: Optional[datetime] = None
    acted_upon: bool = False
    acted_upon_at: Optional[datetime] = None
    created_at: datetime

    @model_validator(mode="after")
    def _payload_matches_type(self):
        expected = SUGGESTED_ACTION_KIND[self.suggestion_type]
        if self.suggested_action.kind != expected:
            raise ValueError(
                f"{self.suggestion_type.value} suggestions carry '{expected}' actions, got '{self.suggested_action.kind}'"
            )
        return self


# --- Analytics summary -----------------------------------------------------

class ModuleUsage(BaseModel):
    module: str
    usage_count: int
    efficiency: int = Field(ge=0, le=100)


class HourlyActivity(BaseModel):
    hour: int = Field(ge=0, le=23)
    activity_level: int


class OptimizationOpportunity(BaseModel):
    type: str
    description: str
    potential_time_saved: int  # minutes
    implementation_effort: Literal["low", "medium", "high"]


class KnowledgeGap(BaseModel):
    area: str
    evidence: List[str]
    suggested_learning: List[str]


class BehaviorAnalytics(BaseModel):
    user_efficiency_score: int = Field(ge=0, le=100)
    total_actions: int
    window_days: int
    most_used_modules: List[ModuleUsage] = []
    workflow_patterns: List[BehaviorPattern] = []
    time_patterns: List[HourlyActivity] = []
    optimization_opportunities: List[OptimizationOpportunity] = []
    knowledge_gaps: List[KnowledgeGap] = []
