"""sync command: run a full extraction into a new snapshot version."""

from __future__ import annotations

from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from bbextract_core.extractor import ExtractionSummary, PullRequestBundle
from bbextract_core.models import Comment, DiffComment, Project, Repository, Review, User
from bbextract_store.models import (
    CommentRecord,
    DiffCommentRecord,
    DiffStatRecord,
    ProjectRecord,
    PullRequestRecord,
    RepositoryRecord,
    ReviewRecord,
    UserRecord,
)

console = Console()


# --------------------------------------------------------------------------- #
# Core entity → store record mapping                                           #
#                                                                              #
# The CLI owns this mapping: bbextract_core has no store knowledge and         #
# bbextract_store has no core knowledge.                                       #
# --------------------------------------------------------------------------- #


def _iso(ms: int | None) -> str | None:
    """Epoch milliseconds → ISO-8601 UTC string."""
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _name(user: User | None) -> str:
    return user.username if user is not None else ""


def _project_to_record(project: Project) -> ProjectRecord:
    return ProjectRecord(key=project.key, name=project.name, description=project.description)


def _repository_to_record(repo: Repository) -> RepositoryRecord:
    return RepositoryRecord(
        project_key=repo.project_key,
        slug=repo.slug,
        name=repo.name,
        description=repo.description,
        is_public=repo.is_public,
        has_issues=repo.has_issues,
        scm=repo.scm,
    )


def _user_to_record(user: User) -> UserRecord:
    return UserRecord(
        username=user.username,
        display_name=user.display_name,
        user_id=user.user_id or user.username,
        email=user.email,
    )


def _pull_request_to_record(bundle: PullRequestBundle) -> PullRequestRecord:
    repo = bundle.repository
    enriched = bundle.result.pull_request
    pr = enriched.pull_request
    closed_at = enriched.closed_at
    closed_by = enriched.closed_by
    if closed_at is None and enriched.state != "OPEN":
        closed_at = pr.closed_date
    return PullRequestRecord(
        project_key=repo.project_key,
        repo_slug=repo.slug,
        id=pr.id,
        title=pr.title,
        state=enriched.state,
        description=pr.description,
        author=_name(pr.author),
        source_branch=pr.source_branch,
        source_commit=pr.source_commit,
        destination_branch=pr.destination_branch,
        destination_commit=pr.destination_commit,
        created_at=_iso(pr.created_date),
        updated_at=_iso(pr.updated_date),
        commits=enriched.commits,
        changed_files=enriched.changed_files,
        additions=enriched.additions,
        deletions=enriched.deletions,
        comments=enriched.comments,
        review_comments=enriched.review_comments,
        reviews=enriched.reviews,
        merged_at=_iso(enriched.merged_at),
        merged_by=_name(enriched.merged_by),
        closed_at=_iso(closed_at),
        closed_by=_name(closed_by),
    )


def _comment_to_record(repo: Repository, pr_id: int, comment: Comment) -> CommentRecord:
    return CommentRecord(
        project_key=repo.project_key,
        repo_slug=repo.slug,
        pull_request_id=pr_id,
        id=comment.id,
        text=comment.text,
        author=_name(comment.author),
        parent_id=comment.parent_id,
        created_at=_iso(comment.created_date),
        updated_at=_iso(comment.updated_date),
    )


def _diff_comment_to_record(repo: Repository, pr_id: int, diff_comment: DiffComment) -> DiffCommentRecord:
    comment, anchor = diff_comment.comment, diff_comment.anchor
    return DiffCommentRecord(
        project_key=repo.project_key,
        repo_slug=repo.slug,
        pull_request_id=pr_id,
        id=comment.id,
        text=comment.text,
        path=anchor.path,
        author=_name(comment.author),
        parent_id=comment.parent_id,
        created_at=_iso(comment.created_date),
        updated_at=_iso(comment.updated_date),
        src_path=anchor.src_path,
        src_line=anchor.src_line,
        dst_line=anchor.dst_line,
        line_type=anchor.line_type,
        file_type=anchor.file_type,
        from_hash=anchor.from_hash,
        to_hash=anchor.to_hash,
    )


def _review_to_record(repo: Repository, pr_id: int, review: Review) -> ReviewRecord:
    return ReviewRecord(
        project_key=repo.project_key,
        repo_slug=repo.slug,
        pull_request_id=pr_id,
        id=review.id,
        state=review.state,
        author=_name(review.user),
        created_at=_iso(review.created_date),
    )


def save_extracted(store, item) -> None:
    """Write one extracted entity, and everything derived from it, to the pending version."""
    if isinstance(item, Project):
        store.save_project(_project_to_record(item))
    elif isinstance(item, Repository):
        store.save_repository(_repository_to_record(item))
    elif isinstance(item, User):
        store.save_user(_user_to_record(item))
    elif isinstance(item, PullRequestBundle):
        repo = item.repository
        pr_id = item.result.pull_request.pull_request.id
        activity = item.result.activity
        diff_stat = item.result.diff_stat

        store.save_pull_request(_pull_request_to_record(item))
        store.save_diff_stat(
            DiffStatRecord(
                project_key=repo.project_key,
                repo_slug=repo.slug,
                pull_request_id=pr_id,
                added=diff_stat.added,
                removed=diff_stat.removed,
            )
        )
        for comment in activity.comments:
            store.save_comment(_comment_to_record(repo, pr_id, comment))
        for diff_comment in activity.diff_comments:
            store.save_diff_comment(_diff_comment_to_record(repo, pr_id, diff_comment))
        for review in activity.reviews:
            store.save_review(_review_to_record(repo, pr_id, review))
    else:
        raise TypeError(f"Cannot store {type(item).__name__}")


def _print_summary(summary: ExtractionSummary, version: int, dry_run: bool) -> None:
    title = "Dry run (nothing stored)" if dry_run else f"Snapshot version {version}"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Entity", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Projects", str(summary.projects))
    table.add_row("Repositories", str(summary.repositories))
    table.add_row("Pull requests", str(summary.pull_requests))
    table.add_row("Comments", str(summary.comments))
    table.add_row("Diff comments", str(summary.diff_comments))
    table.add_row("Reviews", str(summary.reviews))
    table.add_row("Users", str(summary.users))
    if summary.skipped:
        table.add_row("[yellow]Skipped pull requests[/yellow]", f"[yellow]{summary.skipped}[/yellow]")
    if summary.unavailable_repositories:
        table.add_row("[dim]Repositories without pull requests[/dim]", str(summary.unavailable_repositories))
    console.print(table)


@click.command("sync")
@click.option(
    "--variant",
    type=click.Choice(["server", "cloud"]),
    default=None,
    help="Bitbucket API variant. Overrides config file.",
)
@click.option("--base-url", default=None, help="API root, e.g. https://bitbucket.example.com/rest.")
@click.option("--workspace", default=None, help="Cloud workspace to extract.")
@click.option(
    "--strict/--best-effort",
    "strict",
    default=None,
    help="Abort on the first failing pull request, or skip it and continue.",
)
@click.option("--dry-run", is_flag=True, help="Walk the full history without writing to the store.")
@click.pass_context
def sync_cmd(
    ctx,
    variant: str | None,
    base_url: str | None,
    workspace: str | None,
    strict: bool | None,
    dry_run: bool,
):
    """Extract the full pull request history into a new snapshot version.

    The new version becomes active only after every row has been written;
    a failed run leaves the previously active version in place.

    \b
    Credentials (environment):
      BITBUCKET_TOKEN                          HTTP access token
      BITBUCKET_USERNAME, BITBUCKET_PASSWORD   basic auth / app password
    """
    from bbextract_cli.auth import resolve_credentials
    from bbextract_cli.cli import open_store
    from bbextract_core.config import load_config, validate_config
    from bbextract_core.errors import ConfigError, ExtractError
    from bbextract_core.extractor import BEST_EFFORT, STRICT, Extractor, build_source
    from bbextract_store.base import PersistenceError
    from bbextract_store.noop import NoOpStore

    error_policy = None if strict is None else (STRICT if strict else BEST_EFFORT)
    config = load_config(
        ctx.obj["config_path"],
        cli_overrides={
            **ctx.obj.get("overrides", {}),
            "variant": variant,
            "base_url": base_url,
            "workspace": workspace,
            "error_policy": error_policy,
        },
    )
    try:
        validate_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e))

    store = NoOpStore() if dry_run else open_store(ctx, config)
    source = build_source(config, auth=resolve_credentials())
    extractor = Extractor(source, error_policy=config["error_policy"])

    where = config["workspace"] if config["variant"] == "cloud" else config["base_url"]
    console.print(f"[bold]Extracting[/bold] {config['variant']} [cyan]{where}[/cyan] ({config['error_policy']})")

    version = None
    try:
        version = store.begin()
        for item in extractor.run():
            save_extracted(store, item)
        store.commit()
        store.set_active_version(version)
    except (ExtractError, PersistenceError) as e:
        kept = "" if version is None else f" Version {version} was not activated."
        raise click.ClickException(f"Extraction failed ({type(e).__name__}): {e}.{kept}")
    finally:
        source.close()

    _print_summary(extractor.summary, version, dry_run)
    if not dry_run:
        console.print(f"[green]Version {version} is now active.[/green]")
