import argparse
import logging
import sys
import threading

from content_lifecycle.adapters.sqlite.migrator import SQLiteMigrator
from content_lifecycle.app_shell.config import Settings, validate_ops_rules
from content_lifecycle.app_shell.context import LifecycleContext
from content_lifecycle.rules.loader import load_rules

logger = logging.getLogger("cli")


def get_context(settings: Settings) -> LifecycleContext:
    if not settings.rules_path.exists():
        logger.error("Rules file %s not found.", settings.rules_path)
        sys.exit(1)

    rules = load_rules(settings.rules_path)
    validate_ops_rules(rules)
    SQLiteMigrator(settings.db_path).run_migrations()
    return LifecycleContext.create(settings.db_path, rules)


def handle_migrate(settings: Settings, args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(settings.db_path).run_migrations()
    if applied:
        print(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
    else:
        print("Database is up to date.")


def handle_tick(ctx: LifecycleContext, args: argparse.Namespace) -> None:
    result = ctx.dispatcher.tick()
    for r in result.results:
        suffix = f" ({r.message})" if r.message else ""
        print(f"{r.outcome:<12} {r.kind:<10} {r.item_id}{suffix}")
    print(f"Processed {result.processed} schedule(s).")


def handle_run_dispatcher(ctx: LifecycleContext, args: argparse.Namespace) -> None:
    stop = threading.Event()
    ctx.dispatcher.start()
    if args.with_jobs:
        ctx.jobs.start()
    print("Dispatcher running. Press Ctrl+C to stop.")
    try:
        while not stop.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        ctx.shutdown()


def handle_drain_jobs(ctx: LifecycleContext, args: argparse.Namespace) -> None:
    jobs = ctx.jobs.drain()
    for job in jobs:
        print(
            f"{job.id} {job.kind} {job.status}: "
            f"{job.succeeded_count} succeeded, {job.failed_count} failed"
        )
    print(f"Drained {len(jobs)} job(s).")


def handle_reconcile(ctx: LifecycleContext, args: argparse.Namespace) -> None:
    cleared = ctx.workflows.reconcile_dangling()
    for item_id in cleared:
        print(f"cleared {item_id}")
    print(f"Cleared {len(cleared)} dangling stage reference(s).")


def handle_serve(settings: Settings, args: argparse.Namespace) -> None:
    import uvicorn

    print(f"Starting API server on {args.host}:{args.port}")
    uvicorn.run("content_lifecycle.api.main:app", host=args.host, port=args.port)


def handle_list_failed(ctx: LifecycleContext, args: argparse.Namespace) -> None:
    failed = ctx.schedules.list_failed()
    if not failed:
        print("No failed schedules.")
        return
    for record in failed:
        print(
            f"{record.id} {record.kind:<10} {record.item_id} "
            f"fire_at={record.fire_at.isoformat()} attempts={record.attempts} "
            f"error={record.last_error}"
        )


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Content lifecycle scheduler CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Apply pending database migrations")
    subparsers.add_parser("tick", help="Fire due schedules once")

    run_parser = subparsers.add_parser("run-dispatcher", help="Run the dispatcher loop")
    run_parser.add_argument(
        "--with-jobs", action="store_true", help="Also run bulk job workers"
    )

    subparsers.add_parser("drain-jobs", help="Process pending bulk jobs synchronously")
    subparsers.add_parser("reconcile-stages", help="Clear dangling stage references")
    subparsers.add_parser("list-failed", help="List schedules that exhausted their retries")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    settings = Settings()

    if args.command == "migrate":
        handle_migrate(settings, args)
        return
    if args.command == "serve":
        handle_serve(settings, args)
        return

    ctx = get_context(settings)

    if args.command == "tick":
        handle_tick(ctx, args)
    elif args.command == "run-dispatcher":
        handle_run_dispatcher(ctx, args)
    elif args.command == "drain-jobs":
        handle_drain_jobs(ctx, args)
    elif args.command == "reconcile-stages":
        handle_reconcile(ctx, args)
    elif args.command == "list-failed":
        handle_list_failed(ctx, args)


if __name__ == "__main__":
    main()
