"""Command-line interface router for teamwork."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, NoReturn

from teamwork.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
)
from teamwork.constants import DEFAULT_ROLE, SESSION_ENV_VAR
from teamwork.control_plane import TeamCoordinator
from teamwork.domain.errors import TeamworkError
from teamwork.domain.ids import default_worker_id, validate_actor_id
from teamwork.domain.messages import (
    IdleNotification,
    MessageType,
    Payload,
    ShutdownRequest,
    ShutdownResponse,
    TextPayload,
)
from teamwork.domain.models import (
    CheckStatus,
    CommandEvidence,
    Evidence,
    FileAction,
    FileEvidence,
    NoteEvidence,
    TaskStatus,
    TestEvidence,
    VerificationCheck,
    VerificationRecord,
    VerificationStatus,
    WaveStatus,
    utc_now,
)
from teamwork.observability import correlation_scope, setup_logging, shutdown_logging
from teamwork.persistence import TaskFilter
from teamwork.planning import import_plan, load_plan_file

DEFAULT_TEAM: Final[str] = "default"
DEFAULT_RECLAIM_INTERVAL_SECONDS: Final[float] = 60.0

MESSAGE_TYPES: Final[dict[str, MessageType]] = {
    "text": MessageType.TEXT,
    "idle": MessageType.IDLE_NOTIFICATION,
    "shutdown-request": MessageType.SHUTDOWN_REQUEST,
    "shutdown-response": MessageType.SHUTDOWN_RESPONSE,
}


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CommandContext:
    coordinator: TeamCoordinator
    actor: str
    config: Mapping[str, Any]


class _ArgumentParser(argparse.ArgumentParser):
    """Parser reporting usage errors with the common ``error:`` line and exit code 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"error: {message}\n")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = _ArgumentParser(
        prog="teamwork",
        description=(
            "teamwork — file-based task coordination for many worker processes.\n\n"
            "Common workflows:\n"
            "  teamwork project create --project app --goal '...'\n"
            "  teamwork task import --project app --file plan.yaml\n"
            "  teamwork wave calculate --project app\n"
            "  teamwork task claim --project app --role backend\n"
            "  teamwork task resolve --project app --task-id t1\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to teamwork TOML config (default: $TEAMWORK_CONFIG or ./teamwork.toml).",
    )
    common.add_argument(
        "--base-dir",
        default=None,
        help="Root of the shared state tree (overrides paths.base_dir).",
    )
    common.add_argument("--project", required=True, help="Project name.")
    common.add_argument(
        "--team", default=DEFAULT_TEAM, help=f"Team name (default: {DEFAULT_TEAM})."
    )
    common.add_argument(
        "--actor",
        default=None,
        help=f"Acting worker identity (default: ${SESSION_ENV_VAR} or worker-<pid>).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Log level for the JSONL log (overrides observability.log_level).",
    )

    groups = parser.add_subparsers(dest="group", required=True)
    _add_project_commands(groups, common)
    _add_task_commands(groups, common)
    _add_wave_commands(groups, common)
    _add_mailbox_commands(groups, common)

    # reclaim -------------------------------------------------------------
    reclaim_parser = groups.add_parser(
        "reclaim",
        parents=[common],
        help="Release claims that exceeded the staleness threshold",
    )
    reclaim_parser.add_argument(
        "--stale-after",
        type=float,
        default=None,
        help="Claim age in seconds (overrides claims.stale_after_seconds; 0 disables).",
    )
    reclaim_parser.add_argument(
        "--policy",
        choices=("claim_age", "last_activity"),
        default=None,
        help="How claim age is measured (overrides claims.reclaim_policy).",
    )
    reclaim_parser.add_argument(
        "--watch", action="store_true", default=False, help="Keep sweeping periodically."
    )
    reclaim_parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_RECLAIM_INTERVAL_SECONDS,
        help="Seconds between sweeps in --watch mode.",
    )
    reclaim_parser.add_argument(
        "--max-sweeps", type=int, default=None, help="Stop --watch after this many sweeps."
    )
    reclaim_parser.set_defaults(handler=_cmd_reclaim)

    return parser


def _add_project_commands(groups: Any, common: argparse.ArgumentParser) -> None:
    project_parser = groups.add_parser("project", help="Project lifecycle")
    actions = project_parser.add_subparsers(dest="action", required=True)

    create = actions.add_parser("create", parents=[common], help="Create a project/team")
    create.add_argument("--goal", default="", help="Free-form project goal.")
    create.set_defaults(handler=_cmd_project_create, needs_project=False)

    get = actions.add_parser("get", parents=[common], help="Show project metadata")
    get.set_defaults(handler=_cmd_project_get)

    status = actions.add_parser(
        "status", parents=[common], help="Progress report; refreshes cached stats"
    )
    status.set_defaults(handler=_cmd_project_status)

    clean = actions.add_parser(
        "clean", parents=[common], help="Remove tasks, waves and verification data"
    )
    clean.set_defaults(handler=_cmd_project_clean)


def _add_task_commands(groups: Any, common: argparse.ArgumentParser) -> None:
    task_parser = groups.add_parser("task", help="Task store and claim protocol")
    actions = task_parser.add_subparsers(dest="action", required=True)

    create = actions.add_parser("create", parents=[common], help="Create one task")
    create.add_argument("--task-id", "--id", dest="task_id", required=True)
    create.add_argument("--title", required=True)
    create.add_argument("--description", default="")
    create.add_argument("--role", default=DEFAULT_ROLE)
    create.add_argument(
        "--blocked-by",
        action="append",
        default=[],
        help="Dependency id; repeatable or comma-separated.",
    )
    create.set_defaults(handler=_cmd_task_create)

    get = actions.add_parser("get", parents=[common], help="Show one task")
    get.add_argument("--task-id", "--id", dest="task_id", required=True)
    get.set_defaults(handler=_cmd_task_get)

    list_parser = actions.add_parser("list", parents=[common], help="List tasks")
    list_parser.add_argument("--status", choices=[status.value for status in TaskStatus])
    list_parser.add_argument("--role", default=None)
    list_parser.add_argument("--claimed-by", default=None)
    list_parser.add_argument("--wave", type=int, default=None)
    list_parser.add_argument(
        "--available",
        action="store_true",
        default=False,
        help="Only open tasks whose dependencies are resolved.",
    )
    list_parser.set_defaults(handler=_cmd_task_list)

    claim = actions.add_parser(
        "claim", parents=[common], help="Claim a task (the next available one without --task-id)"
    )
    claim.add_argument("--task-id", "--id", dest="task_id", default=None)
    claim.add_argument("--role", default=None)
    claim.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Refuse tasks whose role differs from --role.",
    )
    claim.set_defaults(handler=_cmd_task_claim)

    update = actions.add_parser(
        "update", parents=[common], help="Append evidence, or edit an unclaimed task"
    )
    update.add_argument("--task-id", "--id", dest="task_id", required=True)
    update.add_argument("--title", default=None)
    update.add_argument("--description", default=None)
    update.add_argument("--note", default=None, help="Note evidence text.")
    update.add_argument("--command", default=None, help="Command evidence.")
    update.add_argument("--exit-code", type=int, default=None)
    update.add_argument("--output", default="")
    update.add_argument("--file", default=None, help="File evidence path.")
    update.add_argument(
        "--action",
        dest="file_action",
        choices=[action.value for action in FileAction],
        default=FileAction.MODIFIED.value,
    )
    update.add_argument("--test-command", default=None, help="Test evidence command.")
    update.add_argument("--passed", type=int, default=0)
    update.add_argument("--failed", type=int, default=0)
    update.add_argument("--total", type=int, default=None)
    update.add_argument("--test-file", default=None)
    update.set_defaults(handler=_cmd_task_update)

    release = actions.add_parser("release", parents=[common], help="Give a claim back")
    release.add_argument("--task-id", "--id", dest="task_id", required=True)
    release.add_argument(
        "--force", action="store_true", default=False, help="Release another actor's claim."
    )
    release.add_argument("--reason", default=None)
    release.set_defaults(handler=_cmd_task_release)

    resolve = actions.add_parser("resolve", parents=[common], help="Mark a claimed task done")
    resolve.add_argument("--task-id", "--id", dest="task_id", required=True)
    resolve.set_defaults(handler=_cmd_task_resolve)

    delete = actions.add_parser("delete", parents=[common], help="Delete an open task")
    delete.add_argument("--task-id", "--id", dest="task_id", required=True)
    delete.add_argument(
        "--force", action="store_true", default=False, help="Delete even if tasks depend on it."
    )
    delete.set_defaults(handler=_cmd_task_delete)

    import_parser = actions.add_parser(
        "import", parents=[common], help="Create tasks from a YAML or JSON plan file"
    )
    import_parser.add_argument("--file", required=True)
    import_parser.set_defaults(handler=_cmd_task_import)


def _add_wave_commands(groups: Any, common: argparse.ArgumentParser) -> None:
    wave_parser = groups.add_parser("wave", help="Wave scheduling and verification")
    actions = wave_parser.add_subparsers(dest="action", required=True)

    calculate = actions.add_parser(
        "calculate", parents=[common], help="Compute waves from dependencies"
    )
    calculate.set_defaults(handler=_cmd_wave_calculate)

    status = actions.add_parser("status", parents=[common], help="Show the wave plan")
    status.set_defaults(handler=_cmd_wave_status)

    update = actions.add_parser("update", parents=[common], help="Set one wave's status")
    update.add_argument("--wave-id", type=int, required=True)
    update.add_argument("--status", choices=[status.value for status in WaveStatus], required=True)
    update.set_defaults(handler=_cmd_wave_update)

    sync = actions.add_parser("sync", parents=[common], help="Derive wave status from tasks")
    sync.set_defaults(handler=_cmd_wave_sync)

    attach = actions.add_parser("attach", parents=[common], help="Add a task to a wave")
    attach.add_argument("--wave-id", type=int, required=True)
    attach.add_argument("--task-id", "--id", dest="task_id", required=True)
    attach.set_defaults(handler=_cmd_wave_attach)

    verify = actions.add_parser("verify", parents=[common], help="Record a wave verification")
    verify.add_argument("--wave-id", type=int, required=True)
    verify.add_argument(
        "--status", choices=[status.value for status in VerificationStatus], required=True
    )
    verify.add_argument(
        "--task",
        dest="tasks",
        action="append",
        default=[],
        help="Verified task id; repeatable (default: every task of the wave).",
    )
    verify.add_argument(
        "--check",
        dest="checks",
        action="append",
        default=[],
        help="Check as TYPE:STATUS:DESCRIPTION, STATUS in passed/failed/skipped; repeatable.",
    )
    verify.add_argument("--issue", dest="issues", action="append", default=[])
    verify.set_defaults(handler=_cmd_wave_verify)


def _add_mailbox_commands(groups: Any, common: argparse.ArgumentParser) -> None:
    mailbox_parser = groups.add_parser("mailbox", help="Per-actor message inboxes")
    actions = mailbox_parser.add_subparsers(dest="action", required=True)

    create = actions.add_parser("create", parents=[common], help="Create the actor's inbox")
    create.set_defaults(handler=_cmd_mailbox_create)

    send = actions.add_parser("send", parents=[common], help="Send a message")
    send.add_argument("--to", dest="recipient", required=True)
    send.add_argument("--type", dest="message_type", choices=sorted(MESSAGE_TYPES), default="text")
    send.add_argument("--message", default=None, help="Text body (type text).")
    send.add_argument("--completed-task", default=None, help="Finished task (type idle).")
    send.add_argument("--reason", default=None)
    decision = send.add_mutually_exclusive_group()
    decision.add_argument("--approve", dest="approved", action="store_true", default=None)
    decision.add_argument("--reject", dest="approved", action="store_false")
    send.set_defaults(handler=_cmd_mailbox_send)

    read = actions.add_parser("read", parents=[common], help="Read the actor's inbox")
    read.add_argument("--unread-only", action="store_true", default=False)
    read.add_argument("--type", dest="message_type", choices=sorted(MESSAGE_TYPES), default=None)
    read.set_defaults(handler=_cmd_mailbox_read)

    mark_read = actions.add_parser("mark-read", parents=[common], help="Mark one message read")
    mark_read.add_argument("--message-id", required=True)
    mark_read.set_defaults(handler=_cmd_mailbox_mark_read)

    poll = actions.add_parser("poll", parents=[common], help="Wait for unread messages")
    poll.add_argument("--timeout", type=float, required=True, help="Seconds to wait.")
    poll.add_argument("--type", dest="message_type", choices=sorted(MESSAGE_TYPES), default=None)
    poll.set_defaults(handler=_cmd_mailbox_poll)


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 1

    try:
        config = _load_effective_config(namespace)
        actor = _resolve_actor(namespace)
        coordinator = TeamCoordinator(namespace.project, namespace.team, config=config)
        handle = setup_logging(
            config["observability"],
            actor=actor,
            log_dir=_log_dir(config),
        )
        try:
            with correlation_scope(project=namespace.project, team=namespace.team, actor=actor):
                if getattr(namespace, "needs_project", True):
                    coordinator.projects.require()
                return int(handler(namespace, CommandContext(coordinator, actor, config)))
        finally:
            shutdown_logging(handle)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except (TeamworkError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_project_create(args: argparse.Namespace, ctx: CommandContext) -> int:
    project = ctx.coordinator.projects.create(ctx.actor, goal=args.goal)
    _emit_json({"project": project.to_dict()})
    return 0


def _cmd_project_get(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json({"project": ctx.coordinator.projects.get().to_dict()})
    return 0


def _cmd_project_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json(ctx.coordinator.status_report(ctx.actor))
    return 0


def _cmd_project_clean(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json(ctx.coordinator.projects.clean(ctx.actor).to_dict())
    return 0


def _cmd_task_create(args: argparse.Namespace, ctx: CommandContext) -> int:
    task = ctx.coordinator.tasks.create(
        args.task_id,
        args.title,
        owner=ctx.actor,
        description=args.description,
        role=args.role,
        blocked_by=_split_ids(args.blocked_by),
    )
    _emit_json({"task": task.to_dict()})
    return 0


def _cmd_task_get(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json({"task": ctx.coordinator.tasks.get(args.task_id).to_dict()})
    return 0


def _cmd_task_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    task_filter = TaskFilter(
        status=TaskStatus(args.status) if args.status else None,
        role=_optional_str(args.role),
        claimed_by=_optional_str(args.claimed_by),
        wave=args.wave,
        available=bool(args.available),
    )
    tasks = ctx.coordinator.tasks.list(task_filter)
    _emit_json({"count": len(tasks), "tasks": [task.to_dict() for task in tasks]})
    return 0


def _cmd_task_claim(args: argparse.Namespace, ctx: CommandContext) -> int:
    claims = ctx.coordinator.claims
    role = _optional_str(args.role)
    if args.strict and role is None:
        raise CLIError("--strict requires --role")
    task_id = _optional_str(args.task_id)
    if task_id is not None:
        task = claims.claim(task_id, ctx.actor, role=role, strict=args.strict)
    else:
        task = claims.claim_next(ctx.actor, role=role, strict=args.strict)
    _emit_json({"claimed": task is not None, "task": task.to_dict() if task else None})
    return 0


def _cmd_task_update(args: argparse.Namespace, ctx: CommandContext) -> int:
    evidence = _evidence_from_args(args, ctx.actor)
    editing = args.title is not None or args.description is not None
    if editing and evidence:
        raise CLIError("--title/--description cannot be combined with evidence flags")
    if editing:
        task = ctx.coordinator.claims.edit(
            args.task_id, ctx.actor, title=args.title, description=args.description
        )
    elif evidence:
        task = ctx.coordinator.claims.add_evidence(args.task_id, ctx.actor, evidence)
    else:
        raise CLIError(
            "nothing to update: pass --note, --command, --file, --test-command, "
            "--title or --description"
        )
    _emit_json({"task": task.to_dict()})
    return 0


def _cmd_task_release(args: argparse.Namespace, ctx: CommandContext) -> int:
    task = ctx.coordinator.claims.release(
        args.task_id, ctx.actor, force=args.force, reason=_optional_str(args.reason)
    )
    _emit_json({"task": task.to_dict()})
    return 0


def _cmd_task_resolve(args: argparse.Namespace, ctx: CommandContext) -> int:
    task = ctx.coordinator.claims.resolve(args.task_id, ctx.actor)
    _emit_json({"task": task.to_dict()})
    return 0


def _cmd_task_delete(args: argparse.Namespace, ctx: CommandContext) -> int:
    deletion = ctx.coordinator.tasks.delete(args.task_id, ctx.actor, force=args.force)
    _emit_json(deletion.to_dict())
    return 0


def _cmd_task_import(args: argparse.Namespace, ctx: CommandContext) -> int:
    planned = load_plan_file(args.file)
    created = import_plan(ctx.coordinator.tasks, planned, ctx.actor, source=args.file)
    _emit_json({"count": len(created), "created": [task.id for task in created]})
    return 0


def _cmd_wave_calculate(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json({"waves": ctx.coordinator.scheduler.plan(ctx.actor).to_dict()})
    return 0


def _cmd_wave_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json({"waves": ctx.coordinator.scheduler.status().to_dict()})
    return 0


def _cmd_wave_update(args: argparse.Namespace, ctx: CommandContext) -> int:
    with correlation_scope(wave_id=str(args.wave_id)):
        plan = ctx.coordinator.scheduler.update_status(
            args.wave_id, WaveStatus(args.status), ctx.actor
        )
    _emit_json({"waves": plan.to_dict()})
    return 0


def _cmd_wave_sync(args: argparse.Namespace, ctx: CommandContext) -> int:
    _emit_json({"waves": ctx.coordinator.scheduler.sync(ctx.actor).to_dict()})
    return 0


def _cmd_wave_attach(args: argparse.Namespace, ctx: CommandContext) -> int:
    with correlation_scope(wave_id=str(args.wave_id), task_id=args.task_id):
        plan = ctx.coordinator.scheduler.attach_task(args.wave_id, args.task_id, ctx.actor)
    _emit_json({"waves": plan.to_dict()})
    return 0


def _cmd_wave_verify(args: argparse.Namespace, ctx: CommandContext) -> int:
    scheduler = ctx.coordinator.scheduler
    now = utc_now()
    tasks = _split_ids(args.tasks)
    if not tasks:
        wave = scheduler.status().wave(args.wave_id)
        tasks = wave.tasks if wave is not None else ()
    record = VerificationRecord(
        wave_id=args.wave_id,
        status=VerificationStatus(args.status),
        verified_at=now,
        tasks_verified=tuple(tasks),
        checks=tuple(_parse_check(raw, now) for raw in args.checks),
        issues=tuple(issue.strip() for issue in args.issues if issue.strip()),
    )
    with correlation_scope(wave_id=str(args.wave_id)):
        plan = scheduler.record_verification(record, ctx.actor)
    _emit_json({"verification": record.to_dict(), "waves": plan.to_dict()})
    return 0


def _cmd_mailbox_create(args: argparse.Namespace, ctx: CommandContext) -> int:
    inbox = ctx.coordinator.mailbox.create_inbox(ctx.actor)
    _emit_json({"actor": inbox.actor, "messages": len(inbox.messages)})
    return 0


def _cmd_mailbox_send(args: argparse.Namespace, ctx: CommandContext) -> int:
    payload = _payload_from_args(args, ctx.actor)
    message = ctx.coordinator.mailbox.send(ctx.actor, args.recipient, payload)
    _emit_json({"message": message.to_dict()})
    return 0


def _cmd_mailbox_read(args: argparse.Namespace, ctx: CommandContext) -> int:
    messages = ctx.coordinator.mailbox.read(
        ctx.actor,
        unread_only=args.unread_only,
        message_type=_message_type(args.message_type),
    )
    _emit_json({"count": len(messages), "messages": [message.to_dict() for message in messages]})
    return 0


def _cmd_mailbox_mark_read(args: argparse.Namespace, ctx: CommandContext) -> int:
    changed = ctx.coordinator.mailbox.mark_as_read(ctx.actor, args.message_id)
    _emit_json({"message_id": args.message_id, "marked": changed})
    return 0


def _cmd_mailbox_poll(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.timeout < 0:
        raise CLIError("--timeout must be >= 0")
    messages = ctx.coordinator.mailbox.poll(
        ctx.actor,
        timeout_seconds=args.timeout,
        message_type=_message_type(args.message_type),
    )
    _emit_json(
        {
            "count": len(messages),
            "timed_out": not messages,
            "messages": [message.to_dict() for message in messages],
        }
    )
    return 0


def _cmd_reclaim(args: argparse.Namespace, ctx: CommandContext) -> int:
    reclaimer = ctx.coordinator.reclaimer
    if not args.watch:
        _emit_json(reclaimer.sweep().to_dict())
        return 0
    if args.interval <= 0:
        raise CLIError("--interval must be > 0")
    if args.max_sweeps is not None and args.max_sweeps <= 0:
        raise CLIError("--max-sweeps must be > 0")
    reclaimer.watch(
        interval_seconds=args.interval,
        max_sweeps=args.max_sweeps,
        on_sweep=lambda result: _emit_json(result.to_dict()),
    )
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(
        json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
        flush=True,
    )


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "paths.base_dir": _optional_str(getattr(args, "base_dir", None)),
        "observability.log_level": _optional_log_level(getattr(args, "log_level", None)),
        "claims.stale_after_seconds": getattr(args, "stale_after", None),
        "claims.reclaim_policy": getattr(args, "policy", None),
    }
    try:
        return load_config(_optional_str(args.config_path), cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc


def _resolve_actor(args: argparse.Namespace) -> str:
    actor = (
        _optional_str(args.actor)
        or _optional_str(os.environ.get(SESSION_ENV_VAR))
        or default_worker_id()
    )
    try:
        return validate_actor_id(actor)
    except ValueError as exc:
        raise CLIError(f"invalid actor {actor!r}: {exc}") from exc


def _log_dir(config: Mapping[str, Any]) -> Path:
    configured = _optional_str(config["observability"].get("log_dir"))
    if configured is not None:
        return Path(configured)
    return Path(config["paths"]["base_dir"]).expanduser() / "logs"


def _evidence_from_args(args: argparse.Namespace, actor: str) -> list[Evidence]:
    now = utc_now()
    evidence: list[Evidence] = []
    if args.note is not None:
        evidence.append(NoteEvidence(text=args.note, author=actor, timestamp=now))
    if args.command is not None:
        evidence.append(
            CommandEvidence(
                command=args.command, output=args.output, exit_code=args.exit_code, timestamp=now
            )
        )
    if args.file is not None:
        evidence.append(
            FileEvidence(path=args.file, action=FileAction(args.file_action), timestamp=now)
        )
    if args.test_command is not None:
        evidence.append(
            TestEvidence(
                command=args.test_command,
                passed=args.passed,
                failed=args.failed,
                total=args.total,
                output=args.output,
                exit_code=args.exit_code,
                test_file=args.test_file,
                timestamp=now,
            )
        )
    return evidence


def _payload_from_args(args: argparse.Namespace, actor: str) -> Payload:
    reason = _optional_str(args.reason)
    match MESSAGE_TYPES[args.message_type]:
        case MessageType.TEXT:
            text = _optional_str(args.message)
            if text is None:
                raise CLIError("--message is required for text messages")
            return TextPayload(text=text)
        case MessageType.IDLE_NOTIFICATION:
            return IdleNotification(
                worker_id=actor,
                completed_task_id=_optional_str(args.completed_task),
                reason=reason,
            )
        case MessageType.SHUTDOWN_REQUEST:
            return ShutdownRequest(reason=reason)
        case MessageType.SHUTDOWN_RESPONSE:
            if args.approved is None:
                raise CLIError("--approve or --reject is required for shutdown responses")
            return ShutdownResponse(approved=args.approved, reason=reason)


def _parse_check(raw: str, timestamp: Any) -> VerificationCheck:
    parts = raw.split(":", 2)
    if len(parts) != 3 or not all(part.strip() for part in parts):
        raise CLIError(f"invalid --check {raw!r}: expected TYPE:STATUS:DESCRIPTION")
    check_type, status, description = (part.strip() for part in parts)
    try:
        check_status = CheckStatus(status)
    except ValueError as exc:
        raise CLIError(
            f"invalid --check status {status!r}: expected passed, failed or skipped"
        ) from exc
    return VerificationCheck(
        type=check_type, description=description, status=check_status, timestamp=timestamp
    )


def _message_type(raw: str | None) -> MessageType | None:
    return MESSAGE_TYPES[raw] if raw is not None else None


def _split_ids(values: Sequence[str]) -> tuple[str, ...]:
    ids: list[str] = []
    for value in values:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return tuple(ids)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument")
    cleaned = value.strip()
    return cleaned or None


def _optional_log_level(value: object) -> str | None:
    cleaned = _optional_str(value)
    return cleaned.upper() if cleaned is not None else None


__all__ = [
    "CLIError",
    "CommandContext",
    "build_parser",
    "main",
    "run_cli",
]
