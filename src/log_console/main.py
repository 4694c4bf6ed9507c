"""CLI entry - log console: story transcripts and text search over JSONL logs"""

import argparse
import html
import logging
import sys
import time
from collections import Counter
from pathlib import Path

# Make the package importable when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from log_console.config.settings import Settings
from log_console.console.view_model import ConsoleViewModel
from log_console.models.entity import LogLevel, TaskState
from log_console.render.formatting import time_of_day
from log_console.render.story import RELOAD
from log_console.search.text_search import SearchOptions
from log_console.store.criteria import SearchCriteria, TimePeriod
from log_console.store.jsonl_store import JsonlTailer, read_entities
from log_console.store.memory_store import LogStore

log = logging.getLogger("log_console")

FORMATS = ("text", "markdown", "html", "ansi")


def _get_settings(args) -> Settings:
    config = getattr(args, "config", None)
    return Settings(config_path=Path(config) if config else None)


def _setup_logging(args, settings: Settings):
    level = logging.DEBUG if getattr(args, "verbose", False) else settings.log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _load_store(file_path: str) -> LogStore:
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"log file not found: {path}")
    store = LogStore()
    store.add_many(read_entities(path))
    return store


def _story_options(args, settings: Settings):
    options = settings.story_options()
    changes = {}
    if getattr(args, "compact", False):
        changes["compact_mode"] = True
    if getattr(args, "expanded", False):
        changes["network_expanded"] = True
    if getattr(args, "all", False):
        changes["reduced_count"] = False
    if getattr(args, "limit", None):
        changes["limit"] = args.limit
        changes.setdefault("reduced_count", True)
    return options.with_changes(**changes)


def _format_text(text, fmt: str, title: str) -> str:
    if fmt == "markdown":
        return text.to_markdown()
    if fmt == "ansi":
        return text.to_ansi()
    if fmt == "html":
        return _HTML_PAGE.format(title=html.escape(title), body=text.to_html())
    return text.plain


_HTML_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ background-color: #1e1e1e; color: #d4d4d4; font-family: -apple-system, sans-serif; }}
pre {{ white-space: pre-wrap; font-size: 12px; line-height: 1.5; }}
.digital, .title {{ color: #8a8a8a; }}
.level-trace {{ color: #8a8a8a; }}
.level-warning, .level-notice {{ color: #e5a445; }}
.level-error, .level-critical {{ color: #f14c4c; }}
.status_pending {{ color: #e5c07b; }}
.status_success {{ color: #98c379; }}
.status_failure {{ color: #f14c4c; }}
a {{ color: #4a9eff; }}
.json_key {{ color: #d4d4d4; }} .json_string {{ color: #f14c4c; }}
.json_other {{ color: #d0bf69; }} .json_null {{ color: #c678dd; }}
</style>
</head>
<body>
<pre>{body}</pre>
</body>
</html>
"""


def cmd_story(args) -> int:
    """Render the story transcript of a log file"""
    settings = _get_settings(args)
    _setup_logging(args, settings)
    store = _load_store(args.file)
    criteria = SearchCriteria(
        filter_term=args.filter or "",
        only_errors=args.only_errors,
        time_period=TimePeriod(args.period),
        session_id=args.session or "",
        domains=frozenset(args.domain or ()),
    )
    console = ConsoleViewModel.from_settings(
        store, settings,
        story_options=_story_options(args, settings),
        criteria=criteria,
        ascending=not args.descending,
    )

    output = _format_text(console.text, args.format, Path(args.file).name)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output, encoding="utf-8")
        print(f"✓ {console.snapshot.count} entities -> {out_path}")
    else:
        print(output)
    return 0


def cmd_search(args) -> int:
    """Search the messages of a log file"""
    settings = _get_settings(args)
    _setup_logging(args, settings)
    store = _load_store(args.file)
    console = ConsoleViewModel.from_settings(store, settings)
    console.set_search_options(SearchOptions(
        case_sensitive=args.case_sensitive or settings.case_sensitive,
        regex=args.regex or settings.regex,
        whole_word=args.whole_word or settings.whole_word,
    ))
    console.set_search_term(args.query)
    if console.search_error:
        print(f"✗ {console.search_error}", file=sys.stderr)
        return 1

    matches = console.search.matches
    entity_count = len({m.index for m in matches})
    print("=" * 60)
    print(f"Search: {args.query!r} - {len(matches)} matches in {entity_count} entities")
    print("=" * 60)

    for match in matches[:args.limit]:
        entity = console.snapshot[match.index]
        line_start = entity.text.rfind("\n", 0, match.start) + 1
        line_end = entity.text.find("\n", match.start)
        if line_end < 0:
            line_end = len(entity.text)
        line = entity.text[line_start:line_end]
        col = match.start - line_start
        highlighted = line[:col] + "[" + line[col:col + match.length] + "]" + line[col + match.length:]
        print(f"  #{match.index:<5} {time_of_day(entity.created_at)} "
              f"{entity.label}: {highlighted[:120]}")
    if len(matches) > args.limit:
        print(f"  ... {len(matches) - args.limit} more")
    return 0


def cmd_follow(args) -> int:
    """Print a log file's story and keep appending as the file grows"""
    settings = _get_settings(args)
    _setup_logging(args, settings)
    interval = args.interval if args.interval is not None else settings.follow_interval

    store = LogStore()
    options = _story_options(args, settings).with_changes(reduced_count=False)
    console = ConsoleViewModel.from_settings(store, settings, story_options=options)
    render = (lambda t: t.to_ansi()) if args.color else (lambda t: t.plain)

    def on_update(update):
        if update.kind == RELOAD:
            print("\n" + "-" * 60)
        sys.stdout.write(render(update.text))
        sys.stdout.flush()

    console.subscribe_story(on_update)
    tailer = JsonlTailer(args.file)

    polls = 0
    try:
        while args.max_polls is None or polls < args.max_polls:
            entities = tailer.poll()
            if tailer.truncated:
                store.remove_all()
            if entities:
                log.debug("follow: %d new entities", len(entities))
                store.add_many(entities)
            polls += 1
            if args.max_polls is None or polls < args.max_polls:
                time.sleep(interval)
    except KeyboardInterrupt:
        pass
    print()
    return 0


def cmd_stats(args) -> int:
    """Show level and network statistics"""
    settings = _get_settings(args)
    _setup_logging(args, settings)
    store = _load_store(args.file)
    entities = store.all()

    levels = Counter(e.level for e in entities)
    states = Counter(e.task.state for e in entities if e.task is not None)
    labels = Counter(e.label for e in entities)

    print("=" * 60)
    print(f"Log statistics: {args.file}")
    print("=" * 60)
    print(f"Entities: {len(entities)}")
    if entities:
        first = min(e.created_at for e in entities)
        last = max(e.created_at for e in entities)
        print(f"Time range: {first.isoformat()} ~ {last.isoformat()}")

    print("\nLevels:")
    for level in LogLevel:
        if levels[level]:
            print(f"  {level.value:10s}: {levels[level]}")

    print(f"\nNetwork tasks: {sum(states.values())}")
    for state in TaskState:
        if states[state]:
            print(f"  {state.value:10s}: {states[state]}")

    print("\nTop labels:")
    for label, count in labels.most_common(10):
        print(f"  {label:30s}: {count}")

    hosts = sorted(store.all_hosts())
    if hosts:
        print("\nHosts:")
        for host in hosts:
            print(f"  {host}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Log console - story transcripts and live text search for JSONL logs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="settings file (default: ./.log-console.json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    subparsers = parser.add_subparsers(dest="command", help="available commands")

    # story
    p_story = subparsers.add_parser("story", help="render the story transcript")
    p_story.add_argument("file", help="JSONL log file (.jsonl or .jsonl.zst)")
    p_story.add_argument("--compact", action="store_true", help="compact mode")
    p_story.add_argument("--expanded", action="store_true", help="show response bodies")
    p_story.add_argument("--all", action="store_true", help="do not limit the entity count")
    p_story.add_argument("--limit", type=int, help="render at most N entities")
    p_story.add_argument("--format", choices=FORMATS, default="text")
    p_story.add_argument("--output", "-o", help="write to a file instead of stdout")
    p_story.add_argument("--descending", action="store_true", help="newest first")
    p_story.add_argument("--filter", help="only entities containing this term")
    p_story.add_argument("--only-errors", action="store_true", help="only errors")
    p_story.add_argument("--period", choices=[p.value for p in TimePeriod], default="all",
                         help="only entities from this time period")
    p_story.add_argument("--session", help="only entities from this session id")
    p_story.add_argument("--domain", action="append",
                         help="only network requests to this host (repeatable)")

    # search
    p_search = subparsers.add_parser("search", help="search message text")
    p_search.add_argument("file", help="JSONL log file")
    p_search.add_argument("query", help="search term")
    p_search.add_argument("--regex", action="store_true", help="treat the query as a regex")
    p_search.add_argument("--case-sensitive", action="store_true")
    p_search.add_argument("--whole-word", action="store_true")
    p_search.add_argument("--limit", "-n", type=int, default=50, help="maximum matches shown")

    # follow
    p_follow = subparsers.add_parser("follow", help="tail a growing log file")
    p_follow.add_argument("file", help="JSONL log file")
    p_follow.add_argument("--compact", action="store_true", help="compact mode")
    p_follow.add_argument("--expanded", action="store_true", help="show response bodies")
    p_follow.add_argument("--color", action="store_true", help="ANSI colors")
    p_follow.add_argument("--interval", type=float, help="polling interval in seconds")
    p_follow.add_argument("--max-polls", type=int, help="stop after N polls")

    # stats
    p_stats = subparsers.add_parser("stats", help="level and network statistics")
    p_stats.add_argument("file", help="JSONL log file")

    return parser


def main(argv=None) -> int:
    """Main entry"""
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "story": cmd_story,
        "search": cmd_search,
        "follow": cmd_follow,
        "stats": cmd_stats,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0
    try:
        return command(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
