import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from lingosrs.application.config import AppConfig, resolve_config
from lingosrs.application.factory import get_identity_verifier, get_scheduling_service
from lingosrs.application.queue_builder import SchedulePlan
from lingosrs.application.scheduling_service import SchedulingService, utc_now
from lingosrs.consts import API_PREFIX, VERSION
from lingosrs.domain.errors import (
    InvalidInput,
    SchedulingError,
    StorageUnavailable,
    Unauthorized,
)
from lingosrs.domain.models import (
    CompletionEvent,
    CompletionResult,
    ItemGrade,
    LessonProgress,
    MemoryItem,
)
from lingosrs.domain.ports import IdentityVerifier
from lingosrs.domain.stats.models import ProgressSnapshot, StudyRecommendations
from lingosrs.infrastructure.identity import bearer_token

logger = logging.getLogger("lingosrs.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"lingosrs server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("lingosrs server shutting down...")


app = FastAPI(
    title="lingosrs",
    description="Spaced-repetition scheduling for bite-size language lessons.",
    version=VERSION,
    lifespan=lifespan,
)

start_time = time.time()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache
def get_config() -> AppConfig:
    return resolve_config()


@lru_cache
def get_service() -> SchedulingService:
    return get_scheduling_service(get_config())


@lru_cache
def get_verifier() -> IdentityVerifier:
    return get_identity_verifier(get_config())


def get_clock() -> datetime:
    return utc_now()


async def get_learner_id(
    authorization: Annotated[str | None, Header()] = None,
    verifier: IdentityVerifier = Depends(get_verifier),
) -> str:
    return await verifier.verify(bearer_token(authorization))


Service = Annotated[SchedulingService, Depends(get_service)]
LearnerId = Annotated[str, Depends(get_learner_id)]
Now = Annotated[datetime, Depends(get_clock)]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

ERROR_STATUS: list[tuple[type[SchedulingError], int]] = [
    (Unauthorized, 401),
    (InvalidInput, 400),
    (StorageUnavailable, 503),
]


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status}): {exc}")
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ItemGradeRequest(BaseModel):
    unit_id: str
    grade: int
    response_time_ms: int | None = None
    level: str | None = None


class CompletionRequest(BaseModel):
    lesson_id: str
    score: int
    time_spent_seconds: float = 0
    item_grades: list[ItemGradeRequest] = Field(default_factory=list)
    completion_id: str | None = None

    def to_event(self) -> CompletionEvent:
        return CompletionEvent(
            lesson_id=self.lesson_id,
            score=self.score,
            time_spent_seconds=self.time_spent_seconds,
            item_grades=[
                ItemGrade(
                    unit_id=g.unit_id,
                    grade=g.grade,
                    response_time_ms=g.response_time_ms,
                    level=g.level,
                )
                for g in self.item_grades
            ],
            completion_id=self.completion_id,
        )


class LessonProgressModel(BaseModel):
    lesson_id: str
    last_score: int
    review_interval_days: int
    times_reviewed: int
    total_time_spent_seconds: float
    next_review_at: datetime | None
    last_reviewed_at: datetime | None

    @classmethod
    def from_domain(cls, progress: LessonProgress) -> "LessonProgressModel":
        return cls(
            lesson_id=progress.lesson_id,
            last_score=progress.last_score,
            review_interval_days=progress.review_interval_days,
            times_reviewed=progress.times_reviewed,
            total_time_spent_seconds=progress.total_time_spent_seconds,
            next_review_at=progress.next_review_at,
            last_reviewed_at=progress.last_reviewed_at,
        )


class CompletionResponse(BaseModel):
    success: bool
    completion_id: str
    progress: LessonProgressModel
    items_updated: int
    streak: int
    longest_streak: int
    mastered_count: int
    replayed: bool

    @classmethod
    def from_domain(cls, result: CompletionResult) -> "CompletionResponse":
        return cls(
            success=True,
            completion_id=result.completion_id,
            progress=LessonProgressModel.from_domain(result.progress),
            items_updated=result.items_updated,
            streak=result.current_streak,
            longest_streak=result.longest_streak,
            mastered_count=result.mastered_count,
            replayed=result.replayed,
        )


class DueLessonModel(BaseModel):
    lesson_id: str
    next_review_at: datetime
    last_score: int
    priority: str


class Recommendations(BaseModel):
    new_cards_today: int
    reviews_due_today: int
    estimated_minutes: int
    urgency: str


class DueScheduleResponse(BaseModel):
    due_lessons: list[DueLessonModel]
    due_items: int
    recommendations: Recommendations
    daily_new_cap: int
    daily_review_cap: int
    summary: dict[str, int]

    @classmethod
    def from_domain(cls, plan: SchedulePlan) -> "DueScheduleResponse":
        return cls(
            due_lessons=[
                DueLessonModel(
                    lesson_id=d.lesson_id,
                    next_review_at=d.next_review_at,
                    last_score=d.last_score,
                    priority=d.priority.value,
                )
                for d in plan.due_lessons
            ],
            due_items=plan.due_item_count,
            recommendations=Recommendations(
                new_cards_today=plan.new_cards_today,
                reviews_due_today=plan.reviews_due_today,
                estimated_minutes=plan.estimated_minutes,
                urgency=plan.urgency.value,
            ),
            daily_new_cap=plan.daily_new_cap,
            daily_review_cap=plan.daily_review_cap,
            summary=plan.summary,
        )


class MemoryItemModel(BaseModel):
    unit_id: str
    stability: float
    difficulty: float
    state: str
    last_review_at: datetime
    due_at: datetime
    reps: int
    lapses: int
    review_count: int
    average_response_time: float
    level: str | None

    @classmethod
    def from_domain(cls, item: MemoryItem) -> "MemoryItemModel":
        return cls(
            unit_id=item.unit_id,
            stability=item.stability,
            difficulty=item.difficulty,
            state=item.state.value,
            last_review_at=item.last_review_at,
            due_at=item.due_at,
            reps=item.reps,
            lapses=item.lapses,
            review_count=item.review_count,
            average_response_time=item.average_response_time,
            level=item.level,
        )


class DayActivityModel(BaseModel):
    date: date
    lessons: int
    reviews: int


class ItemStatsModel(BaseModel):
    total: int
    mastered: int
    learning: int
    new: int
    due: int
    lapse_rate: float


class ProgressResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_at: datetime | None
    lessons_completed: int
    total_mastered: int
    current_level: str
    item_stats: ItemStatsModel
    level_progress: dict[str, int]
    weekly_activity: list[DayActivityModel]
    daily_new_cap: int
    daily_review_cap: int
    items: list[MemoryItemModel]

    @classmethod
    def from_domain(cls, snap: ProgressSnapshot) -> "ProgressResponse":
        return cls(
            current_streak=snap.current_streak,
            longest_streak=snap.longest_streak,
            last_activity_at=snap.last_activity_at,
            lessons_completed=snap.lessons_completed_this_period,
            total_mastered=snap.total_mastered_count,
            current_level=snap.current_level,
            item_stats=ItemStatsModel(
                total=snap.items.total,
                mastered=snap.items.mastered,
                learning=snap.items.learning,
                new=snap.items.new,
                due=snap.items.due,
                lapse_rate=snap.items.lapse_rate,
            ),
            level_progress=snap.level_distribution,
            weekly_activity=[
                DayActivityModel(date=d.day, lessons=d.lessons, reviews=d.reviews)
                for d in snap.weekly_activity
            ],
            daily_new_cap=snap.daily_new_cap,
            daily_review_cap=snap.daily_review_cap,
            items=[MemoryItemModel.from_domain(i) for i in snap.item_sample],
        )


class StudyPlanResponse(BaseModel):
    focus_areas: list[str]
    review_first: list[str]
    skip_today: list[str]
    suggested_minutes: int
    difficulty: str
    next_level_target: str
    new_words_limit: int

    @classmethod
    def from_domain(cls, plan: StudyRecommendations) -> "StudyPlanResponse":
        return cls(
            focus_areas=plan.focus_areas,
            review_first=plan.review_first,
            skip_today=plan.skip_today,
            suggested_minutes=plan.suggested_minutes,
            difficulty=plan.difficulty.value,
            next_level_target=plan.next_level_target,
            new_words_limit=plan.new_words_limit,
        )


class CapsRequest(BaseModel):
    daily_new_cap: int | None = None
    daily_review_cap: int | None = None


class CapsResponse(BaseModel):
    daily_new_cap: int
    daily_review_cap: int


class EraseResponse(BaseModel):
    success: bool
    records_deleted: int


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


router = APIRouter(prefix=API_PREFIX)


@router.post("/lessons/complete", response_model=CompletionResponse)
async def complete_lesson(req: CompletionRequest, learner_id: LearnerId, service: Service, now: Now):
    """
    Record a finished lesson and its per-item grades.
    """
    result = await service.submit_completion(learner_id, req.to_event(), now)
    return CompletionResponse.from_domain(result)


@router.get("/schedule/due", response_model=DueScheduleResponse)
async def due_schedule(learner_id: LearnerId, service: Service, now: Now):
    """Due lessons (with priority) and advisory item counts for today."""
    plan = await service.get_due_schedule(learner_id, now)
    return DueScheduleResponse.from_domain(plan)


@router.get("/progress", response_model=ProgressResponse)
async def progress(learner_id: LearnerId, service: Service, now: Now):
    snapshot = await service.get_progress(learner_id, now)
    return ProgressResponse.from_domain(snapshot)


@router.get("/study/recommendations", response_model=StudyPlanResponse)
async def study_recommendations(learner_id: LearnerId, service: Service):
    """Weak units to drill first, strong units to skip, and today's new-unit limit."""
    plan = await service.get_recommendations(learner_id)
    return StudyPlanResponse.from_domain(plan)


@router.put("/learner/settings", response_model=CapsResponse)
async def update_settings(req: CapsRequest, learner_id: LearnerId, service: Service):
    profile = await service.set_daily_caps(learner_id, req.daily_new_cap, req.daily_review_cap)
    return CapsResponse(
        daily_new_cap=profile.daily_new_cap, daily_review_cap=profile.daily_review_cap
    )


@router.delete("/learner/data", response_model=EraseResponse)
async def erase_learner_data(learner_id: LearnerId, service: Service):
    """
    Delete every record stored for the learner.
    """
    removed = await service.erase_learner(learner_id)
    return EraseResponse(success=True, records_deleted=removed)


app.include_router(router)
