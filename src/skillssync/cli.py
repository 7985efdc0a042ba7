"""CLI entry point for skillssync."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import NoReturn, cast

from skillssync import __version__
from skillssync.sync.audit import AuditStatus
from skillssync.sync.config import SyncEnvironment, skill_roots
from skillssync.sync.engine import SyncEngine
from skillssync.sync.errors import SyncEngineError
from skillssync.sync.models import ScopeFilter, SkillRecord, SyncState, SyncTrigger
from skillssync.sync.mutations import SkillMutator
from skillssync.sync.scheduler import SyncScheduler
from skillssync.sync.watcher import PollingWatcher
from skillssync.validation.repair import build_repair_prompt
from skillssync.validation.validator import SkillValidator


def _engine() -> SyncEngine:
    return SyncEngine(SyncEnvironment.from_env())


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _resolve(engine: SyncEngine, ref: str, workspace: str | None) -> SkillRecord:
    try:
        skill = engine.find_skill(ref, workspace)
    except ValueError as e:
        _fail(str(e))
    if skill is None:
        _fail(f"skill not found: {ref}")
    return skill


def _print_state_summary(state: SyncState) -> None:
    s = state.summary
    print(
        f"Sync {state.sync.status}: {s.global_count} global, "
        f"{s.project_count} project, {s.conflict_count} conflict(s)"
    )
    for warning in state.sync.warnings:
        print(f"  warning: {warning}")


def _cmd_sync(args: argparse.Namespace) -> None:
    engine = _engine()
    try:
        state = engine.run_sync(SyncTrigger(cast(str, args.trigger)))
    except SyncEngineError as e:
        _fail(str(e))
    if args.json:
        print(json.dumps(state.model_dump(mode="json"), indent=2))
    else:
        _print_state_summary(state)


def _cmd_list(args: argparse.Namespace) -> None:
    skills = _engine().list_skills(ScopeFilter(cast(str, args.scope)))
    if args.json:
        print(json.dumps([s.model_dump(mode="json") for s in skills], indent=2))
        return
    if not skills:
        print("No skills found.")
        return
    for skill in skills:
        where = skill.workspace or "~"
        status = f" [{skill.status}]" if skill.is_archived else ""
        print(f"{skill.id}  {skill.scope:<7} {skill.skill_key:<30} {where}{status}")


def _cmd_show(args: argparse.Namespace) -> None:
    skill = _resolve(_engine(), cast(str, args.skill), args.workspace)
    print(json.dumps(skill.model_dump(mode="json"), indent=2))


def _cmd_validate(args: argparse.Namespace) -> None:
    skill = _resolve(_engine(), cast(str, args.skill), args.workspace)
    result = SkillValidator().validate(skill)
    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return
    print(f"{skill.skill_key}: {result.summary_text}")
    for issue in result.issues:
        fixable = " (auto-fixable)" if issue.auto_fixable else ""
        location = f" [{issue.location}]" if issue.location else ""
        print(f"  {issue.code}: {issue.message}{location}{fixable}")
        if args.prompt:
            print()
            print(build_repair_prompt(skill, issue))
            print()


def _run_mutation(args: argparse.Namespace, name: str) -> None:
    engine = _engine()
    mutator = SkillMutator(engine)
    refs = cast(list[str], args.skills)
    skills = [_resolve(engine, ref, args.workspace) for ref in refs]
    result = mutator.apply_batch(name.replace("-", "_"), skills, confirmed=bool(args.yes))
    for skill_id in result.succeeded:
        print(f"{name}: {skill_id} ok")
    for skill_id, message in result.failed:
        print(f"{name}: {skill_id} failed: {message}", file=sys.stderr)
    if result.sync_error:
        print(f"Error: sync after {name} failed: {result.sync_error}", file=sys.stderr)
    if not result.ok:
        sys.exit(1)


def _cmd_delete(args: argparse.Namespace) -> None:
    _run_mutation(args, "delete")


def _cmd_archive(args: argparse.Namespace) -> None:
    _run_mutation(args, "archive")


def _cmd_restore(args: argparse.Namespace) -> None:
    _run_mutation(args, "restore")


def _cmd_make_global(args: argparse.Namespace) -> None:
    _run_mutation(args, "make-global")


def _cmd_rename(args: argparse.Namespace) -> None:
    engine = _engine()
    skill = _resolve(engine, cast(str, args.skill), args.workspace)
    try:
        state = SkillMutator(engine).rename(skill, cast(str, args.title))
    except SyncEngineError as e:
        _fail(str(e))
    _print_state_summary(state)


def _cmd_watch(args: argparse.Namespace) -> None:
    engine = _engine()
    scheduler = SyncScheduler(lambda trigger: engine.run_sync(trigger))

    def watched() -> list[Path]:
        paths = [root for _, root in engine.env.global_roots()]
        for workspace in engine.workspaces():
            paths.extend(root for _, root in skill_roots(workspace))
        return paths

    watcher = PollingWatcher(
        watched,
        poll_seconds=cast(float, args.interval),
        debounce_seconds=cast(float, args.debounce),
    )
    stop = threading.Event()
    scheduler.request(SyncTrigger.MANUAL)
    print("Watching skill roots. Press Ctrl+C to stop.")
    try:
        watcher.run(lambda: scheduler.request(SyncTrigger.AUTO_FILESYSTEM), stop)
    except KeyboardInterrupt:
        stop.set()
    scheduler.wait()


def _cmd_audit(args: argparse.Namespace) -> None:
    status = AuditStatus(args.status) if args.status else None
    events = _engine().audit.list_events(limit=args.limit, status=status, action=args.action)
    if args.json:
        print(json.dumps([e.model_dump(mode="json") for e in events], indent=2))
        return
    for event in events:
        print(f"{event.occurred_at}  {event.action:<12} {event.status:<8} {event.summary}")


def _cmd_prefs(args: argparse.Namespace) -> None:
    store = _engine().preferences
    prefs = store.load()
    changed = False
    if args.auto_migrate is not None:
        prefs.auto_migrate_to_canonical_source = args.auto_migrate == "on"
        changed = True
    for root in cast(list[str], args.add_root or []):
        if not Path(root).expanduser().is_absolute():
            _fail(f"discovery roots must be absolute: {root}")
        prefs.workspace_discovery_roots.append(root)
        changed = True
    for root in cast(list[str], args.remove_root or []):
        prefs.workspace_discovery_roots = [r for r in prefs.workspace_discovery_roots if r != root]
        changed = True
    if changed:
        prefs = store.save(prefs)
    print(json.dumps(prefs.model_dump(mode="json"), indent=2))


def _add_skill_args(parser: argparse.ArgumentParser, *, many: bool = False) -> None:
    if many:
        _ = parser.add_argument("skills", nargs="+", help="Skill ids or keys")
    else:
        _ = parser.add_argument("skill", help="Skill id or key")
    _ = parser.add_argument("--workspace", default=None, help="Workspace to disambiguate a key")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="skillssync",
        description="Keep agent skill packages in sync across .claude, .agents and .codex",
    )
    _ = parser.add_argument(
        "-V", "--version", action="version", version=f"skillssync {__version__}"
    )
    _ = parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    sync_p = subparsers.add_parser("sync", help="Run a full sync")
    _ = sync_p.add_argument(
        "--trigger",
        choices=[t.value for t in SyncTrigger],
        default=SyncTrigger.MANUAL.value,
        help="Trigger recorded for this run (default: manual)",
    )
    _ = sync_p.add_argument("--json", action="store_true", help="Print the state document")

    list_p = subparsers.add_parser("list", help="List skills from the last sync")
    _ = list_p.add_argument(
        "--scope", choices=[s.value for s in ScopeFilter], default=ScopeFilter.ALL.value
    )
    _ = list_p.add_argument("--json", action="store_true")

    show_p = subparsers.add_parser("show", help="Show one skill record")
    _add_skill_args(show_p)

    validate_p = subparsers.add_parser("validate", help="Validate a skill package")
    _add_skill_args(validate_p)
    _ = validate_p.add_argument("--json", action="store_true")
    _ = validate_p.add_argument(
        "--prompt", action="store_true", help="Print a repair prompt for each issue"
    )

    for name, help_text in (
        ("delete", "Move skills to the trash"),
        ("archive", "Move skills into archive storage"),
        ("restore", "Restore archived skills to the global root"),
        ("make-global", "Promote project skills to the global root"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        _add_skill_args(p, many=True)
        _ = p.add_argument("--yes", action="store_true", help="Confirm the operation")

    rename_p = subparsers.add_parser("rename", help="Rename a skill from a new title")
    _add_skill_args(rename_p)
    _ = rename_p.add_argument("title", help="New display title")

    watch_p = subparsers.add_parser("watch", help="Sync whenever skill roots change")
    _ = watch_p.add_argument("--interval", type=float, default=1.0, help="Poll interval (s)")
    _ = watch_p.add_argument("--debounce", type=float, default=0.5, help="Quiet window (s)")

    audit_p = subparsers.add_parser("audit", help="Show recent audit events")
    _ = audit_p.add_argument("--limit", type=int, default=20)
    _ = audit_p.add_argument("--status", choices=[s.value for s in AuditStatus], default=None)
    _ = audit_p.add_argument("--action", default=None)
    _ = audit_p.add_argument("--json", action="store_true")

    prefs_p = subparsers.add_parser("prefs", help="Show or change preferences")
    _ = prefs_p.add_argument("--auto-migrate", choices=["on", "off"], default=None)
    _ = prefs_p.add_argument("--add-root", action="append", dest="add_root")
    _ = prefs_p.add_argument("--remove-root", action="append", dest="remove_root")

    args = parser.parse_args(sys.argv[1:])
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    dispatch = {
        "sync": _cmd_sync,
        "list": _cmd_list,
        "show": _cmd_show,
        "validate": _cmd_validate,
        "delete": _cmd_delete,
        "archive": _cmd_archive,
        "restore": _cmd_restore,
        "make-global": _cmd_make_global,
        "rename": _cmd_rename,
        "watch": _cmd_watch,
        "audit": _cmd_audit,
        "prefs": _cmd_prefs,
    }
    command = cast(str | None, args.command)
    handler = dispatch.get(command) if command is not None else None
    if handler:
        handler(args)
    else:
        parser.print_help()
        sys.exit(1)
