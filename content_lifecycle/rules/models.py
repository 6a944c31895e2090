from pydantic import BaseModel, Field, model_validator


class ProjectRules(BaseModel):
    slug: str = "content-lifecycle"
    rules_version: str = "1"

class LocaleRules(BaseModel):
    available: list[str] = Field(default_factory=lambda: ["en"])
    default: str = "en"

    @model_validator(mode="after")
    def _default_is_available(self) -> "LocaleRules":
        if not self.available:
            raise ValueError("locales.available must not be empty")
        if self.default not in self.available:
            raise ValueError(f"locales.default {self.default!r} not in locales.available")
        return self

class SchedulingRules(BaseModel):
    max_scheduled_days_ahead: int = Field(default=365, gt=0)
    tick_interval_seconds: float = Field(default=30.0, gt=0)
    claim_ttl_seconds: int = Field(default=300, gt=0)
    max_attempts: int = Field(default=5, gt=0)
    backoff_seconds: list[int] = Field(default_factory=lambda: [5, 15, 60, 300, 900])
    batch_size: int = Field(default=100, gt=0)
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    item_lease_ttl_seconds: float = Field(default=60.0, gt=0)
    shard_index: int = Field(default=0, ge=0)
    shard_count: int = Field(default=1, gt=0)

class JobsRules(BaseModel):
    max_workers: int = Field(default=4, gt=0)
    item_retry_attempts: int = Field(default=3, gt=0)
    item_retry_backoff_seconds: float = Field(default=0.5, ge=0)
    wait_poll_interval_seconds: float = Field(default=0.1, gt=0)
    max_wait_seconds: float = Field(default=30.0, ge=0)

class WorkflowRules(BaseModel):
    api_key_pattern: str = r"^[a-z][a-z0-9_]*$"
    reconcile_on_startup: bool = True

class OpsRules(BaseModel):
    required_env: list[str] = Field(default_factory=list)
    start_dispatcher: bool = True
    start_job_workers: bool = True

class Rules(BaseModel):
    project: ProjectRules = Field(default_factory=ProjectRules)
    locales: LocaleRules = Field(default_factory=LocaleRules)
    scheduling: SchedulingRules = Field(default_factory=SchedulingRules)
    jobs: JobsRules = Field(default_factory=JobsRules)
    workflows: WorkflowRules = Field(default_factory=WorkflowRules)
    ops: OpsRules = Field(default_factory=OpsRules)
