from functools import lru_cache

from fastapi import Depends

from content_lifecycle.app_shell.config import Settings
from content_lifecycle.app_shell.context import LifecycleContext
from content_lifecycle.components.dispatcher import Dispatcher
from content_lifecycle.components.jobs import JobTracker
from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import TransitionEngine
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.rules.loader import load_rules
from content_lifecycle.rules.models import Rules


# --- Settings ---
@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


# --- Context ---
# One context per process: the dispatcher thread, job pool and item locks
# must be shared by every request.
@lru_cache
def get_context() -> LifecycleContext:
    settings = get_settings()
    return LifecycleContext.create(settings.db_path, get_rules(settings))


# --- Component Services ---
def get_schedule_store(ctx: LifecycleContext = Depends(get_context)) -> ScheduleStore:
    return ctx.schedules


def get_workflow_store(ctx: LifecycleContext = Depends(get_context)) -> WorkflowStore:
    return ctx.workflows


def get_engine(ctx: LifecycleContext = Depends(get_context)) -> TransitionEngine:
    return ctx.engine


def get_dispatcher(ctx: LifecycleContext = Depends(get_context)) -> Dispatcher:
    return ctx.dispatcher


def get_job_tracker(ctx: LifecycleContext = Depends(get_context)) -> JobTracker:
    return ctx.jobs
