from __future__ import annotations

import argparse
import getpass
import logging
import webbrowser
from pathlib import Path
from typing import List, Optional

from isotrack_cli.catalog import default_catalog
from isotrack_cli.client import IsoTrackClient
from isotrack_cli.config import (
    CONFIG_FILENAME,
    STATUS_FILENAME,
    TASKS_FILENAME,
    SettingsService,
    parse_company_size,
    read_config,
    write_config,
)
from isotrack_cli.exceptions import ConfigError, UploadError, ValidationError
from isotrack_cli.exporters.base import BaseExporter
from isotrack_cli.exporters.controls import ComplianceReportExporter
from isotrack_cli.exporters.tasks import TaskReportExporter
from isotrack_cli.models.config import DEFAULT_COMPANY_NAME, AppConfig, OrganizationSettings
from isotrack_cli.models.controls import ControlStatus, ItemKind
from isotrack_cli.models.documents import DocumentList
from isotrack_cli.models.profiles import CompanySize
from isotrack_cli.models.tasks import TaskPriority, TaskStatus
from isotrack_cli.registry import ComplianceRegistry, StatusBoard
from isotrack_cli.tasks import TaskBoard, due_label
from isotrack_cli.tips import parse_tip
from isotrack_cli.uploads import (
    DIRECT,
    PRESIGNED,
    DocumentCache,
    UploadCoordinator,
    UploadFile,
)

_KIND_CHOICES = {
    "all": None,
    "annex-a": ItemKind.ANNEX_A,
    "clause": ItemKind.CLAUSE,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="isotrack-cli",
        description="Track ISO 27001 compliance work: controls, tasks and evidence documents.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging on stderr.",
    )
    sub = parser.add_subparsers(dest="command")

    init = sub.add_parser("init", help="Write the configuration file.")
    init.add_argument("api_url", metavar="API_URL", help="Backend base URL.")

    settings = sub.add_parser("settings", help="Show or update organization settings.")
    settings.add_argument("--company-name")
    settings.add_argument("--company-size", choices=[s.value for s in CompanySize])

    controls = sub.add_parser("controls", help="List applicable controls and clauses.")
    controls.add_argument("--type", dest="kind", choices=list(_KIND_CHOICES), default="all")
    controls.add_argument("--category")
    controls.add_argument("--status", choices=[s.value for s in ControlStatus])
    controls.add_argument("--search")

    stats = sub.add_parser("stats", help="Show completion per category.")
    stats.add_argument(
        "--type", dest="kind", choices=["annex-a", "clause"], default="annex-a",
    )

    show = sub.add_parser("show", help="Show one control or clause.")
    show.add_argument("item_id", metavar="ITEM_ID")

    set_status = sub.add_parser("set-status", help="Change the status of a control or clause.")
    set_status.add_argument("item_id", metavar="ITEM_ID")
    set_status.add_argument("status", metavar="STATUS", choices=[s.value for s in ControlStatus])

    _add_task_commands(sub)
    _add_document_commands(sub)

    export = sub.add_parser("export", help="Write Markdown and YAML reports.")
    export.add_argument("output_dir", metavar="OUTPUT_DIR")
    export.add_argument(
        "--force", action="store_true",
        help="Overwrite existing files without confirmation.",
    )
    export.add_argument(
        "--keep-raw-json", action="store_true",
        help="Also write raw JSON files alongside Markdown.",
    )
    return parser


def _add_task_commands(sub: argparse._SubParsersAction) -> None:
    tasks = sub.add_parser("tasks", help="Manage the task board.")
    task_sub = tasks.add_subparsers(dest="task_command")

    listing = task_sub.add_parser("list", help="List tasks grouped by status.")
    listing.add_argument("--status", choices=[s.value for s in TaskStatus])
    listing.add_argument("--priority", choices=[p.value for p in TaskPriority])
    listing.add_argument("--search")
    listing.add_argument("--control")

    add = task_sub.add_parser("add", help="Add a task for a control.")
    add.add_argument("control_id", metavar="CONTROL_ID")
    add.add_argument("title", metavar="TITLE")

    status = task_sub.add_parser("set-status", help="Move a task to another column.")
    status.add_argument("task_id", metavar="TASK_ID")
    status.add_argument("status", metavar="STATUS", choices=[s.value for s in TaskStatus])

    seed = task_sub.add_parser("seed", help="Start the board from the sample tasks.")
    seed.add_argument("--force", action="store_true", help="Replace an existing board.")


def _add_document_commands(sub: argparse._SubParsersAction) -> None:
    docs = sub.add_parser("docs", help="Manage evidence documents.")
    doc_sub = docs.add_subparsers(dest="docs_command")

    listing = doc_sub.add_parser("list", help="List documents.")
    listing.add_argument("--control")
    listing.add_argument("--task")
    listing.add_argument("--search")

    upload = doc_sub.add_parser("upload", help="Upload one or more files.")
    upload.add_argument("files", metavar="FILE", nargs="+")
    upload.add_argument("--name", help="Display name (single file only).")
    upload.add_argument("--description")
    upload.add_argument("--control")
    upload.add_argument("--task")
    upload.add_argument(
        "--presigned", action="store_true",
        help="Send bytes straight to the object store, then register the document.",
    )

    update = doc_sub.add_parser("update", help="Change document metadata.")
    update.add_argument("document_id", metavar="DOCUMENT_ID")
    update.add_argument("--name")
    update.add_argument("--description")
    update.add_argument("--control")
    update.add_argument("--task")

    delete = doc_sub.add_parser("delete", help="Delete a document.")
    delete.add_argument("document_id", metavar="DOCUMENT_ID")
    delete.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation.")

    download = doc_sub.add_parser("download", help="Get a download link for a document.")
    download.add_argument("document_id", metavar="DOCUMENT_ID")
    download.add_argument(
        "--no-open", action="store_true", help="Print the link without opening a browser.",
    )


def _run_init(api_url: str) -> None:
    if not api_url.startswith(("http://", "https://")):
        raise ConfigError("API URL must start with http:// or https://")

    token = getpass.getpass("Enter your bearer token (leave empty for none): ")

    company_name = input(f"Company name [{DEFAULT_COMPANY_NAME}]: ").strip()
    raw_size = input(
        "Company size (" + ", ".join(s.value for s in CompanySize) + ") [startup]: "
    ).strip()
    settings = OrganizationSettings(
        company_name=company_name or DEFAULT_COMPANY_NAME,
        company_size=parse_company_size(raw_size) if raw_size else CompanySize.STARTUP,
    )

    config = AppConfig(api_url=api_url, token=token.strip() or None)
    write_config(Path.cwd(), config, settings)
    print(f"Configuration saved to {CONFIG_FILENAME}")


def _run_settings(args: argparse.Namespace) -> None:
    service = SettingsService(Path.cwd())
    if args.company_name is None and args.company_size is None:
        settings = service.load()
    else:
        settings = service.update(
            company_name=args.company_name,
            company_size=parse_company_size(args.company_size) if args.company_size else None,
        )
        print("Settings saved.")

    catalog = default_catalog()
    profile = catalog.profile(settings.company_size)
    print(f"Company name: {settings.company_name}")
    print(f"Company size: {settings.company_size.value} ({profile.name_ko}, {profile.name})")
    print(f"Applicable items: {profile.item_count}")


def _load_registry(cwd: Path) -> ComplianceRegistry:
    return ComplianceRegistry(default_catalog(), StatusBoard.load(cwd / STATUS_FILENAME))


def _run_controls(args: argparse.Namespace) -> None:
    cwd = Path.cwd()
    registry = _load_registry(cwd)
    settings = SettingsService(cwd).load()
    items = registry.select_applicable_items(registry.catalog.profile(settings.company_size))
    kind = _KIND_CHOICES[args.kind]
    scoped = registry.filter_items(items, kind=kind)

    if args.category:
        kinds = [kind] if kind is not None else [ItemKind.CLAUSE, ItemKind.ANNEX_A]
        valid = [c.id for k in kinds for c in registry.available_categories(scoped, k)]
        if args.category not in valid:
            raise ValidationError(
                f"Unknown category '{args.category}'. Available: {', '.join(valid)}"
            )

    shown = registry.filter_items(
        scoped,
        search=args.search,
        category=args.category,
        status=ControlStatus(args.status) if args.status else None,
    )
    for item in shown:
        record = registry.compute_status(item.id)
        print(
            f"{item.id:<8} {record.status.label_ko:<6} {record.progress:>3}%  "
            f"{item.title_ko} ({item.title})"
        )

    overall = registry.overall_progress(scoped)
    print()
    print(f"Showing {len(shown)} of {len(scoped)} items.")
    print(f"Overall: {overall.completed}/{overall.total} completed ({overall.percentage}%)")


def _run_stats(args: argparse.Namespace) -> None:
    cwd = Path.cwd()
    registry = _load_registry(cwd)
    settings = SettingsService(cwd).load()
    items = registry.select_applicable_items(registry.catalog.profile(settings.company_size))
    kind = _KIND_CHOICES[args.kind]

    stats = registry.compute_category_stats(items, registry.catalog.categories(kind), kind)
    for stat in stats:
        print(
            f"{stat.id:<5} {stat.name_ko:<12} {stat.completed:>3}/{stat.total:<3} "
            f"{stat.percentage:>3}%"
        )


def _run_show(item_id: str) -> None:
    cwd = Path.cwd()
    registry = _load_registry(cwd)
    item = registry.catalog.get(item_id)
    record = registry.compute_status(item.id)

    print(f"{item.id} {item.title_ko}")
    print(item.title)
    print(f"Status: {record.status.label_ko} ({record.status.value}), {record.progress}%")
    print()
    print(item.description_ko)

    steps = parse_tip(item.tip)
    if steps:
        print()
        print("구현 팁:")
        for step in steps:
            print(f"  {step.text}")
            for sub in step.sub_items:
                print(f"    - {sub}")

    if item.evidence:
        print()
        print("증거 자료:")
        for line in item.evidence.splitlines():
            if line.strip():
                print(f"  {line.strip()}")

    linked = TaskBoard.load(cwd / TASKS_FILENAME).tasks_for_control(item.id)
    if linked:
        print()
        print("작업:")
        for task in linked:
            print(f"  {task.id}  [{task.status.label_ko}] {task.title}")


def _run_set_status(item_id: str, status: str) -> None:
    cwd = Path.cwd()
    registry = _load_registry(cwd)
    item = registry.catalog.get(item_id)
    record = registry.set_status(item.id, ControlStatus(status))
    registry.statuses.save(cwd / STATUS_FILENAME)
    print(f"{item.id}: {record.status.label_ko} ({record.progress}%)")


def _run_tasks(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    path = Path.cwd() / TASKS_FILENAME
    command = args.task_command

    if command == "seed":
        if path.exists() and not args.force:
            raise ValidationError(f"{TASKS_FILENAME} already exists. Use --force to replace it.")
        board = TaskBoard.sample()
        board.save(path)
        print(f"Seeded {len(board.tasks)} sample tasks.")
        return

    board = TaskBoard.load(path)
    if command == "list":
        tasks = board.filter_tasks(
            search=args.search,
            status=TaskStatus(args.status) if args.status else None,
            priority=TaskPriority(args.priority) if args.priority else None,
        )
        if args.control:
            tasks = [t for t in tasks if t.control_id == args.control]
        for status, column in TaskBoard.group_by_status(tasks).items():
            print(f"{status.label_ko} ({len(column)})")
            for task in column:
                due = due_label(task)
                suffix = f"  {due}" if due else ""
                print(
                    f"  {task.id}  [{task.priority.label_ko}] {task.title}"
                    f"{'  ' + task.control_id if task.control_id else ''}{suffix}"
                )
        stats = board.stats()
        print()
        print(
            f"Total {stats.total}, completed {stats.completed}, "
            f"in progress {stats.in_progress}, overdue {stats.overdue}"
        )
    elif command == "add":
        default_catalog().get(args.control_id)
        task = board.add_task(args.control_id, args.title)
        board.save(path)
        print(f"Added {task.id}")
    elif command == "set-status":
        task = board.set_status(args.task_id, TaskStatus(args.status))
        board.save(path)
        print(f"{task.id}: {task.status.label_ko}")
    else:
        parser.print_help()


def _coordinator() -> UploadCoordinator:
    client = IsoTrackClient(read_config(Path.cwd()))
    return UploadCoordinator(client, DocumentCache(client))


def _print_documents(listing: DocumentList) -> None:
    for doc in listing.documents:
        links = ", ".join(v for v in (doc.control_id, doc.task_id) if v)
        print(
            f"{doc.id}  {doc.name}  {format_file_size(doc.file_size)}  v{doc.version}"
            f"{'  ' + links if links else ''}"
        )
    print(f"{listing.total} document(s), {format_file_size(listing.total_size)} total")


def _run_docs(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    command = args.docs_command
    if command is None:
        parser.print_help()
        return

    coordinator = _coordinator()
    if command == "list":
        _print_documents(
            coordinator.cache.get(control_id=args.control, task_id=args.task, search=args.search)
        )
    elif command == "upload":
        _run_docs_upload(args, coordinator)
    elif command == "update":
        if all(
            value is None
            for value in (args.name, args.description, args.control, args.task)
        ):
            raise ValidationError("Nothing to update.")
        doc = coordinator.update(
            args.document_id,
            name=args.name,
            description=args.description,
            control_id=args.control,
            task_id=args.task,
        )
        print(f"Updated {doc.id} ({doc.name})")
    elif command == "delete":
        if not args.yes:
            answer = input(f"Delete document {args.document_id}? [y/N] ").strip().lower()
            if answer not in ("y", "yes"):
                print("Cancelled.")
                return
        coordinator.delete(args.document_id)
        print(f"Deleted {args.document_id}")
    elif command == "download":
        url = coordinator.request_download_url(args.document_id)
        print(url)
        if not args.no_open:
            webbrowser.open_new_tab(url)


def _run_docs_upload(args: argparse.Namespace, coordinator: UploadCoordinator) -> None:
    if args.name and len(args.files) > 1:
        raise ValidationError("--name can only be used with a single file.")

    files = [
        UploadFile(
            path=Path(f),
            name=args.name,
            description=args.description,
            control_id=args.control,
            task_id=args.task,
        )
        for f in args.files
    ]
    mode = PRESIGNED if args.presigned else DIRECT
    outcomes = coordinator.upload_batch(files, mode=mode)

    failed = 0
    for outcome in outcomes:
        if outcome.succeeded and outcome.document is not None:
            print(f"{outcome.filename}: uploaded as {outcome.document.id}")
        else:
            failed += 1
            print(f"{outcome.filename}: failed ({outcome.error})")

    if failed < len(outcomes):
        _print_documents(coordinator.cache.get(control_id=args.control, task_id=args.task))
    if failed:
        raise UploadError(f"{failed} of {len(outcomes)} upload(s) failed.")


def _run_export(args: argparse.Namespace) -> None:
    cwd = Path.cwd()
    output_dir = Path(args.output_dir)
    export_kwargs = {
        "force": args.force,
        "keep_raw_json": args.keep_raw_json,
    }

    exporters: List[BaseExporter] = [
        ComplianceReportExporter(
            _load_registry(cwd), SettingsService(cwd).load(), output_dir, **export_kwargs,
        ),
        TaskReportExporter(TaskBoard.load(cwd / TASKS_FILENAME), output_dir, **export_kwargs),
    ]
    for exporter in exporters:
        exporter.export()


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    command = args.command
    if command == "init":
        _run_init(args.api_url)
    elif command == "settings":
        _run_settings(args)
    elif command == "controls":
        _run_controls(args)
    elif command == "stats":
        _run_stats(args)
    elif command == "show":
        _run_show(args.item_id)
    elif command == "set-status":
        _run_set_status(args.item_id, args.status)
    elif command == "tasks":
        _run_tasks(args, parser)
    elif command == "docs":
        _run_docs(args, parser)
    elif command == "export":
        _run_export(args)
    else:
        parser.print_help()
