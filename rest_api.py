import asyncio
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, FastAPI, Header, HTTPException, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog_service import BootstrapLoader, CatalogService
from config import APP_VERSION, configure_logging, load_settings
from db import AsyncExerciseRepository, AsyncMuscleGroupRepository, open_store
from errors import NotFoundError, TrainingError, TransientError
from friend_service import FriendService
from identity import Identity
from stats_service import StatisticsService
from workout_service import WorkoutService

logger = logging.getLogger(__name__)


class WorkoutPayload(BaseModel):
    date: Optional[str] = None
    muscle_group: Optional[str] = None
    exercise_name: Optional[str] = None
    reps: Optional[int] = None
    weight: Optional[Union[float, str]] = None
    notes: Optional[str] = None
    is_public: bool = False


class ExercisePayload(BaseModel):
    muscle_group: Optional[str] = None
    name: Optional[str] = None


class OrderPayload(BaseModel):
    ids: List[Union[int, str]]


class FriendRequestPayload(BaseModel):
    email: str


class ProfilePayload(BaseModel):
    name: Optional[str] = None
    photo_url: Optional[str] = None
    is_public_profile: Optional[bool] = None
    allow_friend_requests: Optional[bool] = None


def current_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Optional[Identity]:
    """Identity asserted by the fronting auth layer, if any."""
    if not x_user_id:
        return None
    return Identity(uid=x_user_id, email=x_user_email, display_name=x_user_name)


class TrainingAPI:
    """Provides REST endpoints for workout logging."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        store=None,
        settings=None,
    ) -> None:
        self.settings = settings or load_settings(yaml_path, db_path=db_path)
        configure_logging(self.settings.log_level)
        self.store = store or open_store(self.settings)
        self.workouts = WorkoutService(self.store.workouts)
        self.catalog = CatalogService(
            self.store.exercises, legacy_new_namespace=self.settings.legacy_new_namespace
        )
        self.statistics = StatisticsService(self.store.workouts)
        self.social = FriendService(self.store, feed_limit=self.settings.feed_limit)
        self.bootstrap = self._bootstrap_loader()
        self.app = FastAPI(
            title="Training Log API",
            description="REST API for workout logging, statistics and sharing",
            version=APP_VERSION,
        )
        self._setup_error_handlers()
        self._setup_routes()

    def _bootstrap_loader(self) -> BootstrapLoader:
        timeout = self.settings.bootstrap_timeout
        if self.store.backend == "sqlite":
            groups = AsyncMuscleGroupRepository(self.store.db_path)
            exercises = AsyncExerciseRepository(self.store.db_path)
            return BootstrapLoader(groups.fetch_all_groups, exercises.fetch_for_user, timeout)

        async def fetch_groups():
            return await asyncio.to_thread(self.store.muscle_groups.fetch_all)

        async def fetch_catalog(uid: str):
            return await asyncio.to_thread(self.store.exercises.fetch_for_user, uid)

        return BootstrapLoader(fetch_groups, fetch_catalog, timeout)

    def _key(self, raw: str):
        """Path ids are integers in SQLite and strings in Firestore."""
        if self.store.backend != "sqlite":
            return raw
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise NotFoundError("not found")

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(TrainingError)
        async def training_error(request: Request, exc: TrainingError):
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
            return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

        @self.app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException):
            return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

        @self.app.exception_handler(RequestValidationError)
        async def request_error(request: Request, exc: RequestValidationError):
            errors = exc.errors()
            if errors:
                first = errors[0]
                field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
                message = f"{field}: {first.get('msg')}" if field else first.get("msg")
            else:
                message = "invalid request"
            return JSONResponse(status_code=400, content={"error": message})

    def _setup_routes(self) -> None:
        workouts_router = APIRouter(prefix="/api/workouts", tags=["Workouts"])
        exercises_router = APIRouter(prefix="/api/exercises", tags=["Exercises"])
        social_router = APIRouter(prefix="/api", tags=["Social"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and data store connectivity.",
        )
        def health():
            """Return API and data store connection status."""
            try:
                self.store.muscle_groups.fetch_all()
                return {"status": "ok", "backend": self.store.backend, "version": APP_VERSION}
            except TransientError as e:
                raise HTTPException(status_code=503, detail=e.message)

        @workouts_router.get("")
        def list_workouts(
            date: Optional[str] = None,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.workouts.list(identity, date)

        @workouts_router.get("/range")
        def workouts_in_range(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.workouts.range(identity, start_date, end_date)

        @workouts_router.get(
            "/grouped",
            summary="Sets of one day grouped by exercise",
        )
        def grouped_workouts(
            date: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.workouts.grouped(identity, date)

        @workouts_router.post("")
        def create_workout(
            payload: WorkoutPayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            wid = self.workouts.create(identity, payload.model_dump())
            return {"id": wid, "message": "Workout added successfully"}

        @workouts_router.put("/{workout_id}")
        def update_workout(
            workout_id: str,
            payload: WorkoutPayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            self.workouts.update(identity, self._key(workout_id), payload.model_dump())
            return {"message": "Workout updated successfully"}

        @workouts_router.delete("/{workout_id}")
        def delete_workout(
            workout_id: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            self.workouts.delete(identity, self._key(workout_id))
            return {"message": "Workout deleted successfully"}

        @self.app.get("/api/muscle-groups", tags=["Exercises"])
        def list_muscle_groups():
            try:
                return self.store.muscle_groups.fetch_all()
            except TransientError as e:
                logger.warning("Muscle groups unavailable: %s", e.detail)
                return []

        @exercises_router.get("")
        def list_exercises(
            muscle_group: Optional[str] = None,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.catalog.safe_catalog(identity, muscle_group)

        @exercises_router.post("")
        def create_exercise(
            payload: ExercisePayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.catalog.create_exercise(identity, payload.muscle_group, payload.name)

        @exercises_router.put("/order")
        def save_exercise_order(
            payload: OrderPayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            ids = [self._key(str(eid)) for eid in payload.ids]
            return self.catalog.save_order(identity, ids)

        @exercises_router.post("/repair-codes")
        def repair_item_codes(identity: Optional[Identity] = Depends(current_identity)):
            return {"updated": self.catalog.repair_item_codes(identity)}

        @exercises_router.post("/dedupe")
        def remove_duplicate_exercises(identity: Optional[Identity] = Depends(current_identity)):
            return {"removed": self.catalog.remove_duplicates(identity)}

        @exercises_router.post("/adopt")
        def adopt_orphan_exercises(identity: Optional[Identity] = Depends(current_identity)):
            return {"updated": self.catalog.adopt_orphans(identity)}

        @exercises_router.put("/item/{exercise_id}")
        def update_exercise(
            exercise_id: str,
            payload: ExercisePayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            self.catalog.update_exercise(
                identity, self._key(exercise_id), payload.muscle_group, payload.name
            )
            return {"message": "Exercise updated successfully"}

        @exercises_router.delete("/item/{exercise_id}")
        def delete_exercise(
            exercise_id: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            self.catalog.delete_exercise(identity, self._key(exercise_id))
            return {"message": "Exercise deleted successfully"}

        @exercises_router.get("/{muscle_group}")
        def exercise_suggestions(
            muscle_group: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.catalog.suggestions(identity, muscle_group)

        @self.app.get("/api/statistics", tags=["Statistics"])
        def statistics(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.statistics.statistics(identity, start_date, end_date)

        @self.app.get("/api/statistics/overview", tags=["Statistics"])
        def statistics_overview(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.statistics.overview(identity, start_date, end_date)

        @self.app.get(
            "/api/bootstrap",
            summary="Initial load",
            description="Muscle groups and the caller's catalog, bounded by bootstrap_timeout.",
        )
        async def bootstrap(identity: Optional[Identity] = Depends(current_identity)):
            return await self.bootstrap.load(identity)

        @social_router.get("/profile")
        def get_profile(identity: Optional[Identity] = Depends(current_identity)):
            return self.social.get_profile(identity)

        @social_router.put("/profile")
        def update_profile(
            payload: ProfilePayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.social.update_profile(identity, payload.model_dump(exclude_none=True))

        @social_router.get("/friends")
        def list_friends(identity: Optional[Identity] = Depends(current_identity)):
            return self.social.friends(identity)

        @social_router.post("/friends/repair")
        def repair_friend_edges(identity: Optional[Identity] = Depends(current_identity)):
            return {"created": self.social.repair_edges(identity)}

        @social_router.delete("/friends/{friend_id}")
        def remove_friend(
            friend_id: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            removed = self.social.remove_friend(identity, friend_id)
            return {"id": friend_id, "removed": removed}

        @social_router.get("/friend-requests")
        def pending_friend_requests(identity: Optional[Identity] = Depends(current_identity)):
            return self.social.pending_requests(identity)

        @social_router.post("/friend-requests")
        def send_friend_request(
            payload: FriendRequestPayload,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.social.send_request(identity, payload.email)

        @social_router.post("/friend-requests/{request_id}/accept")
        def accept_friend_request(
            request_id: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.social.accept_request(identity, self._key(request_id))

        @social_router.post("/friend-requests/{request_id}/reject")
        def reject_friend_request(
            request_id: str,
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.social.reject_request(identity, self._key(request_id))

        @social_router.get("/feed")
        def friends_feed(
            limit: Optional[int] = Query(None, ge=1, le=100),
            identity: Optional[Identity] = Depends(current_identity),
        ):
            return self.social.friends_feed(identity, limit)

        self.app.include_router(workouts_router)
        self.app.include_router(exercises_router)
        self.app.include_router(social_router)


def create_app(db_path: str | None = None, yaml_path: str = "settings.yaml") -> FastAPI:
    return TrainingAPI(db_path=db_path, yaml_path=yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
