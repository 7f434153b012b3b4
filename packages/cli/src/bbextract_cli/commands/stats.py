"""stats command: summarise one snapshot version."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATE_STYLE = {"OPEN": "cyan", "MERGED": "green", "DECLINED": "red", "SUPERSEDED": "dim"}


@click.command("stats")
@click.option(
    "--version",
    "version",
    type=int,
    default=None,
    help="Snapshot version to summarise. Defaults to the active version.",
)
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, version: int | None, top: int):
    """Show aggregated pull request statistics for a snapshot.

    Reports entity counts, the pull request state breakdown, the most active
    reviewers and the most commented files.
    """
    from bbextract_cli.cli import open_store

    store = open_store(ctx)
    if version is None:
        version = store.active_version()
        if version is None:
            console.print("[yellow]No active snapshot. Run `bbextract sync` first.[/yellow]")
            return

    pull_requests = store.list_rows("pull_requests", version)
    if not pull_requests and not store.list_rows("projects", version):
        console.print(f"[yellow]Version {version} holds no rows.[/yellow]")
        return

    reviews = store.list_rows("pull_request_reviews", version)
    diff_comments = store.list_rows("pull_request_review_comments", version)

    # --- Summary ---
    console.print(f"\n[bold]Snapshot version [cyan]{version}[/cyan][/bold]")
    console.print(f"  Projects:       {len(store.list_rows('projects', version))}")
    console.print(f"  Repositories:   {len(store.list_rows('repositories', version))}")
    console.print(f"  Pull requests:  {len(pull_requests)}")
    console.print(f"  Comments:       {len(store.list_rows('pull_request_comments', version))}")
    console.print(f"  Diff comments:  {len(diff_comments)}")
    console.print(f"  Reviews:        {len(reviews)}")
    console.print(f"  Users:          {len(store.list_rows('users', version))}")
    if pull_requests:
        additions = sum(pr.additions for pr in pull_requests)
        deletions = sum(pr.deletions for pr in pull_requests)
        console.print(f"  Lines changed:  +{additions} / -{deletions}")
        reviewed = sum(1 for pr in pull_requests if pr.reviews)
        console.print(f"  Reviewed:       {reviewed} of {len(pull_requests)} pull requests")

    # --- State breakdown ---
    state_counter = Counter(pr.state for pr in pull_requests)
    if state_counter:
        state_table = Table(title="Pull Request States", show_header=True)
        state_table.add_column("State", style="bold")
        state_table.add_column("Count", justify="right")
        state_table.add_column("% of total", justify="right")
        for state, count in state_counter.most_common():
            style = _STATE_STYLE.get(state, "white")
            pct = f"{count / len(pull_requests) * 100:.1f}%"
            state_table.add_row(f"[{style}]{state}[/{style}]", str(count), pct)
        console.print(state_table)

    # --- Most active reviewers ---
    reviewer_counter = Counter(r.author for r in reviews if r.author)
    if reviewer_counter:
        reviewer_table = Table(title=f"Top {top} Reviewers", show_header=True)
        reviewer_table.add_column("Reviewer")
        reviewer_table.add_column("Approved", justify="right")
        reviewer_table.add_column("Changes requested", justify="right")
        approved = Counter(r.author for r in reviews if r.state == "APPROVED")
        for author, _ in reviewer_counter.most_common(top):
            reviewer_table.add_row(author, str(approved[author]), str(reviewer_counter[author] - approved[author]))
        console.print(reviewer_table)

    # --- Most commented files ---
    file_counter = Counter(c.path for c in diff_comments if c.path)
    if file_counter:
        file_table = Table(title=f"Top {top} Most Commented Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Comments", justify="right")
        for path, count in file_counter.most_common(top):
            file_table.add_row(path, str(count))
        console.print(file_table)
