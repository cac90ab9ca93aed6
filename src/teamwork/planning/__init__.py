"""Planning public API: dependency graph, wave layering and plan-file import."""

from teamwork.planning.plan_file import (
    PlanFileError,
    PlannedTask,
    import_plan,
    load_plan_file,
    parse_plan,
)
from teamwork.planning.task_graph import TaskGraph
from teamwork.planning.waves import WaveScheduler, check_wave_transition, compute_waves

__all__ = [
    "PlanFileError",
    "PlannedTask",
    "TaskGraph",
    "WaveScheduler",
    "check_wave_transition",
    "compute_waves",
    "import_plan",
    "load_plan_file",
    "parse_plan",
]
