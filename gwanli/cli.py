"""CLI entry point for gwanli."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from . import explorer
from .config import ConfigLoader, GwanliConfig, load_config
from .jobs import FileJobStore, JobState, JobTracker, get_by_id, list_recent, new_job_id
from .notion import index_workspace
from .storage import DatabaseRecord, ResultPage
from .utils.logging import setup_logging

JOB_PREFIXES = ("cli", "mcp")


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Index and browse Notion workspaces offline",
        prog="gwanli",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to configuration file (default: ~/gwanli/gwanli.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Index a Notion workspace")
    index.add_argument("-w", "--workspace", help="Workspace name (default: default_search)")

    ls = subparsers.add_parser("ls", help="List pages and databases as a tree")
    ls.add_argument("workspace", nargs="?", help="Workspace name (default: default_search)")
    ls.add_argument("--prefix", default="/", help="Path prefix to list (default: '/')")
    ls.add_argument("--depth", type=int, default=None, help="Maximum depth to display")

    search = subparsers.add_parser("search", help="Full-text search")
    search.add_argument("query", help="Search terms")
    _add_result_options(search)

    glob = subparsers.add_parser("glob", help="Find pages by glob pattern")
    glob.add_argument("pattern", help="Glob pattern, e.g. '/projects/*'")
    glob.add_argument("--field", choices=["slug", "title"], default="slug", help="Field to match")
    _add_result_options(glob)

    view = subparsers.add_parser("view", help="Show a page or database by slug")
    view.add_argument("slug", help="Slug, e.g. /projects/notes")
    view.add_argument("-w", "--workspace", help="Workspace name (default: default_search)")
    view.add_argument("--content", action="store_true", help="Print the markdown content")

    job = subparsers.add_parser("job", help="Check indexing job status")
    job.add_argument("-i", "--id", dest="job_id", help="Check specific job by ID")
    job.add_argument("-n", "--count", type=int, default=5, help="Number of recent jobs to show")
    job.add_argument("-p", "--prefix", choices=JOB_PREFIXES, default="cli", help="Filter by job prefix")

    workspace = subparsers.add_parser("workspace", help="Manage configured workspaces")
    actions = workspace.add_subparsers(dest="action", required=True)

    add = actions.add_parser("add", help="Add a workspace")
    add.add_argument("name", nargs="?", default="default", help="Workspace name (default: default)")
    add.add_argument("--api-key", required=True, help="Notion integration token")
    add.add_argument("--description", help="Description (default: 'Workspace: <name>')")
    add.add_argument("--db-path", help="SQLite file (default: ~/gwanli/<name>/workspace.db)")

    actions.add_parser("list", help="List workspaces")

    update = actions.add_parser("update", help="Change a workspace's description or API key")
    update.add_argument("name", nargs="?", default="default", help="Workspace name (default: default)")
    update.add_argument("--description", help="New description")
    update.add_argument("--api-key", help="New Notion integration token")

    delete = actions.add_parser("delete", help="Remove a workspace from the configuration")
    delete.add_argument("name", nargs="?", default="default", help="Workspace name (default: default)")

    return parser


def _add_result_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-w", "--workspace", help="Workspace name (default: default_search)")
    parser.add_argument("--limit", type=int, default=10, help="Maximum results (default: 10)")
    parser.add_argument("--offset", type=int, default=0, help="Results to skip (default: 0)")
    parser.add_argument("--content", action="store_true", help="Include a content preview")


def format_result_page(heading: str, page: ResultPage, offset: int, include_content: bool) -> str:
    """
    Format a page of search results for the terminal.

    Args:
        heading: First line of the output
        page: Results to format
        offset: Offset used for the query
        include_content: Whether to show content previews

    Returns:
        Printable text
    """
    if not page.results:
        return f"{heading}\n\nNo results found."

    lines = [
        heading,
        "",
        f"Results {offset + 1}-{offset + len(page.results)} of {page.total_count}"
        + (" (more available)" if page.has_more else ""),
        "",
    ]
    for index, result in enumerate(page.results, start=offset + 1):
        lines.append(f"{index}. [{result.type.upper()}] {result.title or 'Untitled'}")
        if result.slug:
            lines.append(f"   Slug: {result.slug}")
        if include_content and result.content:
            preview = result.content[:200].replace("\n", " ")
            lines.append(f"   Preview: {preview}{'...' if len(result.content) > 200 else ''}")
        lines.append(f"   Updated: {result.last_updated}")
    return "\n".join(lines)


def format_job(job: JobState) -> str:
    """Format one job for listings."""
    return f"{job.job_id} ({job.status.value})\n   {job.prefix.upper()} job - started {job.start_time.isoformat()}"


async def run_index(config: GwanliConfig, args: argparse.Namespace) -> int:
    workspace = config.get_workspace(args.workspace)

    job_id = new_job_id("cli")
    tracker = JobTracker.create(job_id, FileJobStore(config.jobs_dir))

    print(f"Starting indexing for workspace: {workspace.name}")
    print(f"Job ID: {job_id}")

    await index_workspace(
        api_key=workspace.api_key,
        storage_path=workspace.db_path,
        tracker=tracker,
        concurrency=config.api_rate_limit,
    )

    print(f"Indexing completed for workspace: {workspace.name}")
    return 0


async def run_ls(config: GwanliConfig, args: argparse.Namespace) -> int:
    workspace = config.get_workspace(args.workspace)
    depth = args.depth or config.max_depth

    print(f"Listing files from: {workspace.name}")
    print(await explorer.list_files(workspace.db_path, prefix=args.prefix, max_depth=depth))
    return 0


async def run_search(config: GwanliConfig, args: argparse.Namespace) -> int:
    workspace = config.get_workspace(args.workspace)
    page = await explorer.search(
        workspace.db_path,
        args.query,
        limit=args.limit,
        offset=args.offset,
        include_content=args.content,
    )
    print(format_result_page(f'Search results for: "{args.query}"', page, args.offset, args.content))
    return 0


async def run_glob(config: GwanliConfig, args: argparse.Namespace) -> int:
    workspace = config.get_workspace(args.workspace)
    page = await explorer.find_by_pattern(
        workspace.db_path,
        args.pattern,
        field=args.field,
        limit=args.limit,
        offset=args.offset,
        include_content=args.content,
    )
    heading = f'Pattern results for: "{args.pattern}" ({args.field})'
    print(format_result_page(heading, page, args.offset, args.content))
    return 0


async def run_view(config: GwanliConfig, args: argparse.Namespace) -> int:
    workspace = config.get_workspace(args.workspace)
    record = await explorer.get_by_slug(workspace.db_path, args.slug)

    if record is None:
        print(f"Error: Page not found with slug: {args.slug}", file=sys.stderr)
        return 1

    print(f"[{record.type.upper()}] {record.title or 'Untitled'}")
    print(f"Slug: {record.slug}")
    print(f"ID: {record.id}")
    print(f"Created: {record.created_at}")
    print(f"Updated: {record.last_updated}")

    if isinstance(record, DatabaseRecord):
        print(f"Properties: {json.dumps(record.properties, indent=2)}")
    elif args.content:
        print()
        print(record.content)
    return 0


def run_job(config: GwanliConfig, args: argparse.Namespace) -> int:
    store = FileJobStore(config.jobs_dir)

    if args.job_id:
        job = get_by_id(store, args.job_id)
        if job is None:
            print(f"Error: Job '{args.job_id}' not found.", file=sys.stderr)
            return 1
        print(job.model_dump_json(indent=2))
        return 0

    jobs = list_recent(store, count=args.count, prefix=args.prefix)
    if not jobs:
        print("No jobs found.")
        return 0

    print(f"Found {len(jobs)} job(s):\n")
    for index, job in enumerate(jobs, start=1):
        print(f"{index}. {format_job(job)}")
    print("\nUse 'gwanli job --id <jobId>' to see detailed status.")
    return 0


def format_workspaces(config: GwanliConfig) -> str:
    """Format the configured workspaces, marking the default one."""
    if not config.workspace:
        return "No workspaces found.\n\nUse 'gwanli workspace add --api-key <key>' to create one."

    lines = ["Available workspaces:", ""]
    for name, workspace in config.workspace.items():
        default = " (default)" if name == config.default_search else ""
        description = f" - {workspace.description}" if workspace.description else ""
        lines.append(f"- {name}{default}{description}")
    return "\n".join(lines)


def run_workspace(config: GwanliConfig, args: argparse.Namespace) -> int:
    if args.action == "list":
        print(format_workspaces(config))
        return 0

    try:
        if args.action == "add":
            config.add_workspace(args.name, args.api_key, description=args.description, db_path=args.db_path)
            message = f"Added workspace \"{args.name}\"."
        elif args.action == "update":
            config.update_workspace(args.name, description=args.description, api_key=args.api_key)
            message = f"Updated workspace \"{args.name}\"."
        else:
            config.delete_workspace(args.name)
            message = f"Deleted workspace \"{args.name}\"."
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    ConfigLoader.save_config(config, args.config)
    print(message)
    return 0


COMMANDS = {
    "index": run_index,
    "ls": run_ls,
    "search": run_search,
    "glob": run_glob,
    "view": run_view,
}


def run(args: argparse.Namespace, config: Optional[GwanliConfig] = None) -> int:
    """
    Run a parsed command.

    Args:
        args: Parsed command line arguments
        config: Preloaded configuration, loaded from ``args.config`` if omitted

    Returns:
        Exit code (0 for success)
    """
    if config is None:
        config = load_config(args.config)

    if args.command == "job":
        return run_job(config, args)
    if args.command == "workspace":
        return run_workspace(config, args)
    return asyncio.run(COMMANDS[args.command](config, args))


def main():
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Setup logging based on verbosity
    setup_logging(verbosity=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        print("\nCancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
