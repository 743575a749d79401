import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from .client import BookRecommenderClient
from .config import Settings
from .models import CATEGORIES, BatchStatus, Book, RatingSubmission
from .quota import QuotaState
from .ratings import display_rating
from .services import RatingService, RecommendationSession

console = Console()

STATUS_STYLES = {
    BatchStatus.FULL_SUCCESS: "bold green",
    BatchStatus.PARTIAL: "bold yellow",
    BatchStatus.FAILURE: "bold red",
}


def print_header():
    console.print(Panel.fit(
        """[bold magenta]Book Recommender[/bold magenta]
[italic]Rate books and recommend them to other readers[/italic]""",
        border_style="magenta"
    ))


def setup_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def resolve_username(settings: Settings, given: Optional[str]) -> str:
    username = given or settings.username
    if not username:
        username = Prompt.ask("Username")
    return username.strip()


async def run_rate(client: BookRecommenderClient, username: str, isbn: str):
    scores = {}
    for name in CATEGORIES:
        scores[name] = IntPrompt.ask(f"{name.capitalize()} (1-5)")
    review = Prompt.ask("Review (optional)", default="")

    submission = RatingSubmission(username=username, isbn=isbn, review=review, **scores)
    outcome = await RatingService(client).submit(submission)

    if outcome.errors:
        console.print("[bold red]The rating is not valid:[/bold red]")
        for error in outcome.errors:
            console.print(f"• {error}")
        return False
    if not outcome.ok:
        console.print(f"[bold red]Rating not saved:[/bold red] {outcome.message}")
        return False

    console.print(
        f"[green]Saved.[/green] {display_rating(outcome.score.average)} "
        f"[bold]{outcome.score.quality_label}[/bold]"
    )
    return True


async def run_stats(client: BookRecommenderClient, isbn: str):
    response = await RatingService(client).book_statistics(isbn)
    if not response.success:
        console.print(f"[bold red]Statistics unavailable:[/bold red] {response.message}")
        return False

    stats = response.breakdown
    console.print(f"[bold]{isbn}[/bold] {display_rating(stats.average_rating)} from {stats.total_ratings} ratings")

    stars = Table(title="Stars")
    stars.add_column("Stars")
    stars.add_column("Ratings", justify="right")
    for count_stars, count in stats.star_counts().items():
        stars.add_row("★" * count_stars, str(count))
    console.print(stars)

    categories = Table(title="Categories")
    categories.add_column("Category")
    categories.add_column("Average", justify="right")
    for name, average in stats.category_averages().items():
        categories.add_row(name.capitalize(), f"{average:.2f}" if average is not None else "-")
    console.print(categories)
    return True


async def run_recommend(client: BookRecommenderClient, username: str, target_isbn: str, candidates: List[str]):
    session = RecommendationSession(client, username, Book(isbn=target_isbn))
    state = await session.open()
    console.print(f"[dim]{session.guard.message}[/dim]")
    if state is not QuotaState.READY:
        return False

    for isbn in candidates:
        result = session.select(Book(isbn=isbn))
        if not result.admitted:
            console.print(f"[yellow]Skipped {isbn}:[/yellow] {result.message}")

    if not session.guard.selection:
        console.print("[yellow]Nothing to submit.[/yellow]")
        return False

    with console.status("Saving recommendations..."):
        outcome = await session.submit()

    console.print(f"[{STATUS_STYLES[outcome.status]}]{outcome.summary()}[/]")
    console.print(f"[dim]{session.guard.message}[/dim]")
    return outcome.status is not BatchStatus.FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bookrec", description="Book rating and recommendation client")
    parser.add_argument("--user", help="username (defaults to BOOKREC_USERNAME)")
    sub = parser.add_subparsers(dest="command", required=True)

    rate = sub.add_parser("rate", help="rate a book on the five categories")
    rate.add_argument("isbn")

    stats = sub.add_parser("stats", help="show the rating breakdown of a book")
    stats.add_argument("isbn")

    recommend = sub.add_parser("recommend", help="recommend books for a target book")
    recommend.add_argument("target")
    recommend.add_argument("candidates", nargs="+")
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> bool:
    async with BookRecommenderClient(settings) as client:
        if args.command == "stats":
            return await run_stats(client, args.isbn)

        username = resolve_username(settings, args.user)
        if args.command == "rate":
            return await run_rate(client, username, args.isbn)
        return await run_recommend(client, username, args.target, args.candidates)


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    print_header()
    try:
        ok = asyncio.run(run(args, settings))
    except Exception as e:
        cause = e.__cause__ or e
        console.print(f"[bold red]Error:[/bold red] {e}")
        if cause is not e:
            console.print(f"[red]Caused by:[/red] {cause}")
        sys.exit(1)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
