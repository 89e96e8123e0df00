import argparse
import asyncio
import html
import re
import sys
import time

from bs4 import BeautifulSoup
from rich.console import Console

from hn_timeline.client import UpstreamError
from hn_timeline.config import is_debug_enabled, load_settings, set_debug_logging
from hn_timeline.logging_config import configure_logging
from hn_timeline.models import Comment, FeedEntry, Story
from hn_timeline.service import FeedService
from hn_timeline.timefmt import get_relative_time

console = Console()

HN_ITEM_URL = "https://news.ycombinator.com/item?id={id}"


def html_to_text(txt: str) -> str:
    if not txt:
        return ""
    clean = BeautifulSoup(txt, "html.parser").get_text(" ", strip=True)
    clean = html.unescape(clean)
    return re.sub(r"\s+", " ", clean).strip()


def print_story(story: Story) -> None:
    host = f" [dim]({story.host})[/dim]" if story.host else ""
    console.print(f"[bold]{story.title}[/bold]{host}")
    console.print(
        f"   [dim]{story.score} points by {story.by} {get_relative_time(story.time)}"
        f" | {story.comment_count} comments[/dim]"
    )
    if story.url:
        console.print(f"   [dim cyan]Article:[/] {story.url}")
    console.print(f"   [dim blue]Discuss:[/] {HN_ITEM_URL.format(id=story.id)}")


def print_comment(comment: Comment, indent: bool = False, highlight: bool = False) -> None:
    pad = "  " * comment.depth if indent else ""
    style = "bold yellow" if highlight else "cyan"
    console.print(
        f"{pad}[{style}]{comment.by}[/{style}] [dim]{get_relative_time(comment.time)}"
        f" on {comment.story_title}[/dim]"
    )
    console.print(f"{pad}   {html_to_text(comment.text_html)[:500]}")


def print_entry(entry: FeedEntry) -> None:
    if entry.story is not None:
        print_story(entry.story)
    elif entry.comment is not None:
        print_comment(entry.comment)
    console.print("")


async def run_feed(service: FeedService, args) -> None:
    seed = args.seed if args.seed is not None else int(time.time())
    entries = await service.get_mixed_feed(seed, max_age_ms=0 if args.refresh else None)
    age = service.get_feed_cache_age_ms()
    console.print(
        f"\n[bold green]Timeline[/] [dim](seed {seed}, snapshot age {int((age or 0) / 1000)}s)[/]\n"
    )
    for entry in entries:
        print_entry(entry)

    if args.more <= 0:
        return
    run_id = service.start_run()
    for _ in range(args.more):
        batch = await service.load_comment_batch(run_id)
        if batch is None:
            break
        for comment in batch.comments:
            print_comment(comment)
            console.print("")
        if not batch.has_more:
            console.print("[dim]No more comments.[/]")
            break


async def run_story(service: FeedService, args) -> None:
    page = None
    for _ in range(max(1, args.pages)):
        page = await service.get_story_thread_page(args.id, batch_size=args.batch_size)
        if page is None or not page.has_more:
            break
    if page is None:
        console.print(f"[red]Story {args.id} not found.[/]")
        return

    print_story(page.story)
    console.print("")
    for comment in page.comments:
        print_comment(comment, indent=True)
    if page.has_more:
        console.print(f"\n[dim]More comments available ({len(page.comments)} loaded).[/]")


async def run_comment(service: FeedService, args) -> None:
    context = await service.get_comment_context(args.id)
    if context is None:
        console.print("[red]Comment context not found.[/]")
        return

    chain = " <- ".join(str(parent["id"]) for parent in context.parents)
    console.print(f"[dim]Parent chain: {args.id} <- {chain}[/]\n")
    print_story(context.thread.story)
    console.print("")
    for comment in context.thread.comments:
        print_comment(comment, indent=True, highlight=comment.id == context.selected_id)


async def main(args):
    if args.command == "debug":
        set_debug_logging(args.state == "on")
        console.print(f"Debug logging {args.state}.")
        return

    configure_logging("DEBUG" if is_debug_enabled() else "WARNING")
    service = FeedService.from_settings(load_settings())
    try:
        if args.command == "feed":
            await run_feed(service, args)
        elif args.command == "story":
            await run_story(service, args)
        elif args.command == "comment":
            await run_comment(service, args)
    except UpstreamError as e:
        console.print(f"[red]Error: {e}[/]")
        sys.exit(1)
    finally:
        await service.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hacker News timeline")
    sub = parser.add_subparsers(dest="command", required=True)

    feed = sub.add_parser("feed", help="Show the mixed story/comment feed")
    feed.add_argument("--seed", type=int, default=None, help="Shuffle seed (default: now)")
    feed.add_argument(
        "--refresh", action="store_true", help="Ignore the cached snapshot"
    )
    feed.add_argument(
        "--more",
        type=int,
        default=0,
        help="Extra comment batches to stream after the feed (default: 0)",
    )

    story = sub.add_parser("story", help="Show a story's comment thread")
    story.add_argument("id", type=int)
    story.add_argument(
        "--pages", type=int, default=1, help="Number of pages to load (default: 1)"
    )
    story.add_argument(
        "--batch-size", type=int, default=20, help="Comments per page (default: 20)"
    )

    comment = sub.add_parser("comment", help="Show a comment in its thread")
    comment.add_argument("id", type=int)

    debug = sub.add_parser("debug", help="Persistently toggle debug logging")
    debug.add_argument("state", choices=["on", "off"])
    return parser


def entrypoint() -> None:
    asyncio.run(main(build_parser().parse_args()))


if __name__ == "__main__":
    entrypoint()
