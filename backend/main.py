from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging
import os
from dotenv import load_dotenv

from models import (
    DailyOverride,
    InstanceAction,
    OccurrencesRequest,
    Settings,
    SplitRequest,
    StartTimeUpdate,
    TemplateCreate,
    TemplateUpdate,
    ValidationResult,
)
from database import (
    init_db,
    get_all_templates,
    get_template,
    create_template_db,
    update_template_db,
    soft_delete_template_db,
    duplicate_template_db,
    split_template_series_db,
    get_instances_for_date,
    delete_instance_db,
    get_instance,
    toggle_complete_db,
    skip_instance_db,
    postpone_instance_db,
    undo_instance_status_db,
    set_instance_start_time_db,
    get_settings,
    save_settings_db,
    get_cached_schedule,
    put_cached_schedule,
    invalidate_schedule_cache,
)
from dependencies import build_by_id, dependency_status, would_create_cycle
from placement import BusyInterval, detect_gaps
from recurrence import can_split_at, expand_recurrence_pattern, get_next_occurrence, validate_recurrence_rule
from scheduling import generate_schedule, resolve_windows, summarize_day
from template_filters import MANDATORY_FILTERS, SORT_MODES, filter_templates, sort_templates
from timeutil import format_date, parse_date, parse_time, to_minutes

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _normalize_date(value: str) -> str:
    try:
        return format_date(parse_date(value))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _check_time(value: Optional[str], name: str):
    if value is None:
        return
    try:
        parse_time(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"{name}: {e}")


def _check_template_fields(template_id: Optional[str], fields: dict):
    """Reject invalid recurrence rules and dependency loops before writing."""
    if fields.get("recurrence_rule") is not None:
        errors = validate_recurrence_rule(fields["recurrence_rule"])
        if errors:
            raise HTTPException(status_code=422, detail=errors)
    if fields.get("scheduling_type") == "fixed" and "default_time" in fields and not fields["default_time"]:
        raise HTTPException(status_code=422, detail="Fixed templates need a default_time")
    depends_on = fields.get("depends_on")
    if depends_on:
        if get_template(depends_on) is None:
            raise HTTPException(status_code=422, detail=f"Unknown dependency '{depends_on}'")
        if template_id and would_create_cycle(template_id, depends_on, get_all_templates()):
            raise HTTPException(status_code=422, detail="Dependency would create a cycle")


def _template_view(template, by_id) -> dict:
    data = template.model_dump()
    status = dependency_status(template, by_id)
    data["dependency"] = status._asdict() if status else None
    return data


def _invalidate(date: Optional[str] = None):
    removed = invalidate_schedule_cache(date)
    logger.debug("Invalidated %d cached schedule(s) for %s", removed, date or "all dates")


# Templates

@app.get("/templates")
def get_templates(
    include_inactive: bool = True,
    q: Optional[str] = None,
    mandatory: str = "all",
    time_window: list[str] = Query(default=[]),
    sort: Optional[str] = None,
) -> list[dict]:
    """List templates, optionally filtered by text, mandatory flag and time window, then sorted."""
    if mandatory not in MANDATORY_FILTERS:
        raise HTTPException(status_code=422, detail=f"mandatory must be one of {', '.join(MANDATORY_FILTERS)}")
    if sort is not None and sort not in SORT_MODES:
        raise HTTPException(status_code=422, detail=f"sort must be one of {', '.join(SORT_MODES)}")
    templates = filter_templates(get_all_templates(include_inactive), q, mandatory, time_window)
    if sort:
        templates = sort_templates(templates, sort)
    by_id = build_by_id(get_all_templates())
    return [_template_view(t, by_id) for t in templates]


@app.get("/templates/{template_id}")
def read_template(template_id: str) -> dict:
    template = get_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return _template_view(template, build_by_id(get_all_templates()))


@app.post("/templates")
def create_template(template_data: TemplateCreate) -> dict:
    fields = template_data.model_dump()
    _check_template_fields(None, fields)
    task_name = fields.pop("task_name")
    template = create_template_db(task_name, **fields)
    _invalidate()
    return template.model_dump()


@app.patch("/templates/{template_id}")
def update_template(template_id: str, template_data: TemplateUpdate) -> dict:
    if not get_template(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    updates = template_data.model_dump(exclude_unset=True)
    _check_template_fields(template_id, updates)
    result = update_template_db(template_id, **updates)
    _invalidate()
    return result.model_dump()


@app.delete("/templates/{template_id}")
def delete_template(template_id: str) -> dict:
    if not soft_delete_template_db(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    _invalidate()
    return {"status": "deactivated"}


@app.post("/templates/{template_id}/duplicate")
def duplicate_template(template_id: str) -> dict:
    copy = duplicate_template_db(template_id)
    if not copy:
        raise HTTPException(status_code=404, detail="Template not found")
    _invalidate()
    return copy.model_dump()


@app.post("/templates/{template_id}/split")
def split_template(template_id: str, split_request: SplitRequest) -> dict:
    template = get_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    if template.recurrence_rule is None:
        raise HTTPException(status_code=422, detail="Only recurring templates can be split")
    updates = split_request.updates.model_dump(exclude_unset=True)
    _check_template_fields(template_id, updates)
    split_date = _normalize_date(split_request.split_date)
    if not can_split_at(template.recurrence_rule, split_date):
        raise HTTPException(
            status_code=422,
            detail="split_date must fall after the series start and on or before its end",
        )
    previous, created = split_template_series_db(template_id, split_date, **updates)
    _invalidate()
    return {"previous": previous.model_dump(), "created": created.model_dump()}


# Instances

@app.get("/instances/{date}")
def get_instances(date: str) -> list[dict]:
    return [i.model_dump() for i in get_instances_for_date(_normalize_date(date))]


INSTANCE_ACTIONS = {
    "complete": lambda date, tid, payload: toggle_complete_db(date, tid),
    "skip": lambda date, tid, payload: skip_instance_db(date, tid, payload.reason),
    "postpone": lambda date, tid, payload: postpone_instance_db(date, tid, payload.reason),
    "undo": lambda date, tid, payload: undo_instance_status_db(date, tid),
}


@app.post("/instances/{date}/{template_id}/{action}")
def instance_action(date: str, template_id: str, action: str, payload: Optional[InstanceAction] = None) -> dict:
    handler = INSTANCE_ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown action '{action}'")
    if not get_template(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    date = _normalize_date(date)
    instance = handler(date, template_id, payload or InstanceAction())
    _invalidate(date)
    return instance.model_dump()


@app.put("/instances/{date}/{template_id}/start-time")
def set_start_time(date: str, template_id: str, update: StartTimeUpdate) -> dict:
    if not get_template(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    date = _normalize_date(date)
    instance = set_instance_start_time_db(date, template_id, update.start_time, reopen=update.reopen)
    _invalidate(date)
    return instance.model_dump()


@app.delete("/instances/{instance_id}")
def delete_instance(instance_id: str) -> dict:
    instance = get_instance(instance_id)
    if not instance or not delete_instance_db(instance_id):
        raise HTTPException(status_code=404, detail="Instance not found")
    _invalidate(instance.date)
    return {"status": "deleted"}


# Settings

@app.get("/settings")
def read_settings() -> dict:
    return get_settings().model_dump()


@app.put("/settings")
def update_settings(settings: Settings) -> dict:
    saved = save_settings_db(settings)
    _invalidate()
    return saved.model_dump()


# Schedule

@app.get("/schedule/{date}")
def get_schedule(
    date: str,
    wake_time: Optional[str] = None,
    sleep_time: Optional[str] = None,
    current_time: Optional[str] = None,
) -> dict:
    """Compute (or load from cache) the schedule for a date.

    Only the plain computation is cached; a daily override or current time
    always recomputes.
    """
    date = _normalize_date(date)
    _check_time(wake_time, "wake_time")
    _check_time(sleep_time, "sleep_time")
    _check_time(current_time, "current_time")
    cacheable = wake_time is None and sleep_time is None and current_time is None

    instances = get_instances_for_date(date)
    result = get_cached_schedule(date) if cacheable else None
    if result is not None:
        logger.debug("Schedule cache hit for %s", date)
    else:
        override = DailyOverride(wake_time=wake_time, sleep_time=sleep_time) if (wake_time or sleep_time) else None
        result = generate_schedule(
            get_settings(),
            get_all_templates(include_inactive=False),
            instances,
            date,
            daily_override=override,
            current_time=current_time,
        )
        if not result.success:
            logger.info("No schedule for %s: %s", date, result.error)
        if cacheable:
            put_cached_schedule(date, result)

    sleep = result.sleep_schedule
    wake_min, sleep_min = to_minutes(sleep.wake_time), to_minutes(sleep.sleep_time)
    busy = [BusyInterval(to_minutes(b.start_time), to_minutes(b.end_time)) for b in result.schedule]
    free_gaps = [
        {"start": g.start, "end": g.end, "duration": g.duration}
        for g in detect_gaps(busy, wake_min, sleep_min)
    ]

    response = result.model_dump(exclude_none=True)
    response["free_gaps"] = free_gaps
    response["windows"] = {name: list(span) for name, span in resolve_windows(wake_min, sleep_min).items()}
    response["summary"] = summarize_day(result.schedule, instances, date, current_time).model_dump()
    return response


# Recurrence preview

@app.post("/recurrence/validate")
def validate_rule(rule: dict) -> ValidationResult:
    errors = validate_recurrence_rule(rule)
    return ValidationResult(is_valid=not errors, errors=errors)


@app.post("/recurrence/occurrences")
def preview_occurrences(request: OccurrencesRequest) -> dict:
    errors = validate_recurrence_rule(request.rule)
    if errors:
        raise HTTPException(status_code=422, detail=errors)
    start = _normalize_date(request.start)
    end = _normalize_date(request.end)
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    reference = _normalize_date(request.reference) if request.reference else None
    next_date = get_next_occurrence(request.rule, start, reference)
    return {
        "dates": expand_recurrence_pattern(request.rule, start, end, reference),
        "next": format_date(next_date) if next_date else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
