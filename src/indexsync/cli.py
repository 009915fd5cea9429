from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from .config import ConfigError, load_config
from .context import HostContext, RuntimeCaches
from .drain import ItemIndexError, drain_queue
from .models import RunOutcome, RunSelection
from .purge import PurgeError, purge_index
from .queue_init import InitializationError, initialize_queues
from .report import RunReporter
from .selection import SelectionError, select_run
from .sites import load_sites
from .storage import init_db, queue_statistics, set_setting
from .utils import configure_logging, format_trace, json_dumps, log_event, utc_now_iso

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2

INDEX_EPILOG = """\
Reset and fill the index queue and run the indexer

Examples:

  # Index everything
  indexsync index

  # Index all types only site main and microsite
  indexsync index -s main -s microsite

  # Index only news on all sites
  indexsync index -t news

  # Index only pages and news on site main and microsite
  indexsync index -s main -s microsite -t pages -t news
"""


def _setup_logging(debug: bool = False) -> logging.Logger:
    return configure_logging("indexsync", force_level="DEBUG" if debug else None)


def _write_run_report(report_dir: str, report: dict) -> str:
    Path(report_dir).mkdir(parents=True, exist_ok=True)
    started = datetime.fromisoformat(report["run_started_at"]).astimezone(timezone.utc)
    filename = f"run-{started.strftime('%Y%m%dT%H%M%SZ')}.json"
    path = os.path.join(report_dir, filename)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(json_dumps(report))
    return path


def load_latest_report(report_dir: str) -> dict | None:
    path = Path(report_dir)
    if not path.exists():
        return None
    reports = sorted(path.glob("run-*.json"), key=lambda p: p.stat().st_mtime)
    if not reports:
        return None
    with reports[-1].open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_config_and_sites(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter):
    try:
        config = load_config(args.config)
        sites = load_sites(config.paths.sites_file)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        reporter.error([str(exc)])
        return None, None
    return config, sites


def _fatal(
    reporter: RunReporter,
    logger: logging.Logger,
    event: str,
    exc: BaseException,
    project_root: str | None,
) -> None:
    trace = format_trace(exc, project_root)
    log_event(logger, logging.ERROR, event, error=str(exc), location=trace[0] if trace else None)
    reporter.error([str(exc), "\n".join(trace)])


def _cmd_index(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter) -> int:
    config, sites = _load_config_and_sites(args, logger, reporter)
    if config is None:
        return EXIT_INVALID

    try:
        selection = select_run(sites, args.site, args.type, logger)
    except SelectionError as exc:
        log_event(logger, logging.ERROR, "selection_error", error=str(exc))
        reporter.error([str(exc)])
        return EXIT_INVALID

    field = args.field or config.indexing.type_field
    project_root = config.app.project_root or None
    try:
        conn = init_db(config.paths.state_db)
    except Exception as exc:  # noqa: BLE001
        _fatal(reporter, logger, "state_db_error", exc, project_root)
        return EXIT_FAILURE
    try:
        return _run_index(args, config, selection, field, project_root, conn, logger, reporter)
    finally:
        conn.close()


def _run_index(args, config, selection, field, project_root, conn, logger, reporter) -> int:
    run_started_at = utc_now_iso()

    reporter.title("Purging index")
    try:
        purge_index(selection, field, config.solr, logger)
    except PurgeError as exc:
        _fatal(reporter, logger, "purge_failed", exc, project_root)
        return EXIT_FAILURE

    reporter.title("Initializing queue")
    try:
        initialized = initialize_queues(conn, selection, logger)
    except InitializationError as exc:
        _fatal(reporter, logger, "initialization_failed", exc, project_root)
        return EXIT_FAILURE
    reporter.success(f"Put {initialized.total} items into the queue")

    reporter.title("Start indexing")
    status = EXIT_SUCCESS
    try:
        outcome = drain_queue(
            conn,
            selection,
            config.solr,
            field,
            ignore_errors=args.ignore_errors,
            progress=reporter.progress(),
            on_failure=reporter.failure,
            host=HostContext(),
            caches=RuntimeCaches(),
            project_root=project_root,
            logger=logger,
        )
    except ItemIndexError as exc:
        outcome = exc.outcome
        status = EXIT_FAILURE
    except Exception as exc:  # noqa: BLE001
        _fatal(reporter, logger, "drain_failed", exc, project_root)
        return EXIT_FAILURE

    if status == EXIT_SUCCESS and not outcome.failures:
        reporter.success("Indexed all items")
    reporter.summary(outcome)

    if config.indexing.write_run_reports:
        report = _build_run_report(run_started_at, selection, field, args.ignore_errors, initialized.total, outcome)
        try:
            report_path = _write_run_report(config.paths.run_reports_dir, report)
            set_setting(conn, "index.last_report_path", report_path)
        except Exception as exc:  # noqa: BLE001
            _fatal(reporter, logger, "run_report_failed", exc, project_root)
            return EXIT_FAILURE
        log_event(logger, logging.INFO, "run_report_written", path=report_path)
    return status


def _build_run_report(
    run_started_at: str,
    selection: RunSelection,
    field: str,
    ignore_errors: bool,
    queued: int,
    outcome: RunOutcome,
) -> dict:
    return {
        "run_started_at": run_started_at,
        "run_finished_at": utc_now_iso(),
        "sites": [site.identifier for site in selection.sites],
        "types": list(selection.types),
        "field": field,
        "ignore_errors": ignore_errors,
        "queued": queued,
        "total": outcome.total,
        "attempted": outcome.attempted,
        "succeeded": outcome.succeeded,
        "skipped": outcome.skipped,
        "failed": outcome.failed,
        "aborted": outcome.aborted,
        "failures": outcome.failures,
    }


def _cmd_queue_status(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return EXIT_INVALID
    try:
        conn = init_db(config.paths.state_db)
    except Exception as exc:  # noqa: BLE001
        _fatal(reporter, logger, "state_db_error", exc, config.app.project_root or None)
        return EXIT_FAILURE
    try:
        for row in queue_statistics(conn, args.site):
            log_event(logger, logging.INFO, "queue_status", **row)
    finally:
        conn.close()
    return EXIT_SUCCESS


def _cmd_sites_list(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter) -> int:
    config, sites = _load_config_and_sites(args, logger, reporter)
    if config is None:
        return EXIT_INVALID
    for site in sites:
        log_event(
            logger,
            logging.INFO,
            "site",
            identifier=site.identifier,
            domain=site.domain,
            root_page_id=site.root_page_id,
            types=",".join(site.enabled_types),
            cores=len(site.search_endpoints()),
        )
    return EXIT_SUCCESS


def _cmd_db_migrate(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return EXIT_INVALID
    try:
        init_db(config.paths.state_db).close()
    except Exception as exc:  # noqa: BLE001
        _fatal(reporter, logger, "state_db_error", exc, config.app.project_root or None)
        return EXIT_FAILURE
    log_event(logger, logging.INFO, "db_migrated", path=config.paths.state_db)
    return EXIT_SUCCESS


def _cmd_admin(args: argparse.Namespace, logger: logging.Logger, reporter: RunReporter) -> int:
    import uvicorn

    if args.config:
        os.environ["IS_CONFIG_PATH"] = args.config
    log_event(logger, logging.INFO, "admin_start", host=args.host, port=args.port)
    uvicorn.run("indexsync.admin:app", host=args.host, port=args.port)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="indexsync", description="Search index synchronization")
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to config.yml (defaults to IS_CONFIG_PATH or ./config.yml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug output instead of showing a progress bar",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser(
        "index",
        help="Create the index queue and process it",
        epilog=INDEX_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    index_parser.add_argument(
        "-s",
        "--site",
        action="append",
        default=[],
        help="Limit to given sites (site identifier, repeatable)",
    )
    index_parser.add_argument(
        "-t",
        "--type",
        action="append",
        default=[],
        help="Limit to given types (type name, not table, repeatable)",
    )
    index_parser.add_argument(
        "-i",
        "--ignore-errors",
        action="store_true",
        help="Continue after an indexing error",
    )
    index_parser.add_argument(
        "-f",
        "--field",
        default=None,
        help="Search field that stores the type (default: type_stringS)",
    )
    index_parser.set_defaults(func=_cmd_index)

    queue_parser = subparsers.add_parser("queue", help="Index queue commands")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", required=True)
    queue_status = queue_subparsers.add_parser("status", help="Show queue counts per site and type")
    queue_status.add_argument("-s", "--site", action="append", default=[], help="Limit to given sites")
    queue_status.set_defaults(func=_cmd_queue_status)

    sites_parser = subparsers.add_parser("sites", help="Site configuration")
    sites_subparsers = sites_parser.add_subparsers(dest="sites_command", required=True)
    sites_list = sites_subparsers.add_parser("list", help="List configured sites")
    sites_list.set_defaults(func=_cmd_sites_list)

    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_migrate = db_subparsers.add_parser("migrate", help="Apply database migrations")
    db_migrate.set_defaults(func=_cmd_db_migrate)

    admin_parser = subparsers.add_parser("admin", help="Serve the read-only admin API")
    admin_parser.add_argument("--host", default="127.0.0.1")
    admin_parser.add_argument("--port", type=int, default=8080)
    admin_parser.set_defaults(func=_cmd_admin)

    return parser


def main(argv: Sequence[str] | None = None, reporter: RunReporter | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = _setup_logging(args.debug)
    reporter = reporter or RunReporter(plain=args.debug)
    return args.func(args, logger, reporter)


if __name__ == "__main__":
    raise SystemExit(main())
