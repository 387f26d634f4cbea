import sys
from typing import Optional

import click

from common.logging import LoggingManager
from gitmanager.bulk import BulkDeleteOrchestrator, BulkOutcome
from gitmanager.config import get_config
from gitmanager.dashboard import ConfirmationMismatchError, DashboardViewModel, SortDirection, SortKey
from gitmanager.github.client import GatewayError, GitHubGateway, UnauthorizedError
from gitmanager.settings_store import SettingsStore, UserPreferences

logger = LoggingManager.get_logger('gitmanager.cli')

token_option = click.option('--token', envvar='GITHUB_TOKEN', help='GitHub access token (defaults to $GITHUB_TOKEN)')
user_option = click.option('--user-id', type=int, default=None,
                           help='Apply the saved safety settings of this user instead of the defaults')


def _load_preferences(config, user_id: Optional[int]) -> UserPreferences:
    if user_id is None:
        return UserPreferences.defaults()
    store = SettingsStore(config.database_url)
    return store.get_preferences(user_id)


def _load_dashboard(config, token: Optional[str], preferences: UserPreferences, with_health: bool = False):
    """Builds a gateway and a view-model seeded with the user's repositories. Exits on auth failure."""
    try:
        gateway = GitHubGateway.from_config(token, config)
        if with_health:
            repositories = gateway.get_repositories_with_health()
        else:
            repositories = gateway.list_repositories()
    except UnauthorizedError:
        click.echo("Error: GitHub token missing or invalid. Pass --token or set GITHUB_TOKEN.", err=True)
        sys.exit(1)
    except GatewayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    dashboard = DashboardViewModel(repositories, preferences=preferences, analysis_delay=config.analysis_delay)
    return gateway, dashboard


def _format_entry(entry) -> str:
    repo = entry.repository
    if entry.health is not None:
        health = f"{entry.health.score:>3} {entry.health.status.value:<9}"
    else:
        health = "  - -        "
    flags = "".join([
        "P" if repo.private else "-",
        "F" if repo.fork else "-",
        "A" if repo.archived else "-",
    ])
    return f"{repo.id:>10}  {flags}  {health}  {repo.stargazers_count:>5}*  {repo.full_name}"


def _echo_summary(dashboard: DashboardViewModel) -> None:
    summary = dashboard.health_summary()
    if summary is None:
        return
    click.echo(
        f"\nExcellent: {summary.excellent}  Good: {summary.good}  "
        f"Fair: {summary.fair}  Poor: {summary.poor}"
    )
    click.echo(
        f"Average Score: {summary.average_score}/100  Issues Found: {summary.total_issues}  "
        f"Analyzed: {summary.total_analyzed}/{summary.total_repositories}"
    )


# --- Click Command Group ---
@click.group()
@click.pass_context
def cli(ctx):
    """Git Manager: list, analyze and clean up your GitHub repositories"""
    config = get_config()
    LoggingManager.from_config(config)
    ctx.obj = config


@cli.command('serve')
@click.option('--host', default='127.0.0.1', help='Interface to bind')
@click.option('--port', type=int, default=8000, help='Port to listen on')
def serve(host: str, port: int):
    """Runs the JSON API."""
    import uvicorn
    logger.info(f"Starting Git Manager API on {host}:{port}")
    uvicorn.run("gitmanager.api.main:create_app", factory=True, host=host, port=port)


@cli.command('repos')
@token_option
@click.option('--search', default='', help='Case-insensitive filter on name, description and owner')
@click.option('--sort', 'sort_key', type=click.Choice([k.value for k in SortKey]), default=SortKey.UPDATED.value)
@click.option('--direction', type=click.Choice([d.value for d in SortDirection]), default=SortDirection.DESC.value)
@click.option('--health', 'with_health', is_flag=True, help='Score every repository before listing')
@click.pass_obj
def repos(config, token: Optional[str], search: str, sort_key: str, direction: str, with_health: bool):
    """Lists your repositories."""
    _, dashboard = _load_dashboard(config, token, UserPreferences.defaults(), with_health=with_health)
    dashboard.set_search(search)
    dashboard.set_sort(sort_key, direction)

    visible = dashboard.visible_entries()
    if not visible:
        click.echo("No repositories match your search." if search else "No repositories found.")
        return
    for entry in visible:
        click.echo(_format_entry(entry))
    click.echo(f"\n{len(visible)} of {len(dashboard.entries)} repositories shown")
    _echo_summary(dashboard)


@cli.command('analyze')
@token_option
@click.pass_obj
def analyze(config, token: Optional[str]):
    """Scores repositories one at a time and prints a health summary."""
    gateway, dashboard = _load_dashboard(config, token, UserPreferences.defaults())
    total = len(dashboard.entries)
    if total == 0:
        click.echo("No repositories found.")
        return

    click.echo(f"Starting health analysis for {total} repositories...")
    for progress in dashboard.analyze_health(gateway.analyze_repository_health):
        entry = dashboard.entry(progress.repository_id)
        if progress.succeeded:
            click.echo(f"[{progress.current}/{progress.total}] {entry.repository.full_name}: "
                       f"{entry.health.score} ({entry.health.status.value})")
            for issue in entry.health.issues:
                click.echo(f"    - [{issue.severity.value}] {issue.description}")
        else:
            click.echo(f"[{progress.current}/{progress.total}] {entry.repository.full_name}: analysis failed", err=True)
    click.echo(f"Health analysis completed! Analyzed {total} repositories.")
    _echo_summary(dashboard)


@cli.command('delete')
@token_option
@user_option
@click.argument('full_name')
@click.pass_obj
def delete(config, token: Optional[str], user_id: Optional[int], full_name: str):
    """Permanently deletes OWNER/NAME."""
    if full_name.count('/') != 1:
        click.echo("Repository must be given as OWNER/NAME.", err=True)
        sys.exit(2)
    owner, name = full_name.split('/')
    preferences = _load_preferences(config, user_id)
    gateway, dashboard = _load_dashboard(config, token, preferences)

    match = [repo for repo in dashboard.repositories if repo.owner_login == owner and repo.name == name]
    if not match:
        click.echo(f"Repository {full_name} not found among your repositories.", err=True)
        sys.exit(1)

    confirmation = None
    if preferences.require_repo_delete_confirmation:
        click.echo(f"This will permanently delete {full_name}. This cannot be undone.")
        confirmation = click.prompt(f"Type {name} to confirm", default='', show_default=False)

    try:
        dashboard.delete_repository(gateway, match[0].id, confirmation)
    except ConfirmationMismatchError:
        click.echo("Confirmation did not match. Nothing was deleted.", err=True)
        sys.exit(1)
    except GatewayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {full_name}.")


@cli.command('bulk-delete')
@token_option
@user_option
@click.argument('repository_ids', nargs=-1, type=int, required=True)
@click.pass_obj
def bulk_delete(config, token: Optional[str], user_id: Optional[int], repository_ids):
    """Permanently deletes several repositories by id."""
    preferences = _load_preferences(config, user_id)
    gateway, dashboard = _load_dashboard(config, token, preferences)

    for repo_id in repository_ids:
        if not dashboard.select(repo_id):
            click.echo(f"Skipping unknown repository id {repo_id}", err=True)

    confirmations = {}
    if preferences.require_repo_delete_confirmation and not preferences.disable_bulk_operations:
        for repo_id in sorted(dashboard.selection):
            name = dashboard.entry(repo_id).repository.name
            confirmations[repo_id] = click.prompt(f"Type {name} to confirm", default='', show_default=False)

    try:
        result = dashboard.delete_selected(BulkDeleteOrchestrator(gateway), confirmations)
    except ConfirmationMismatchError as e:
        click.echo(f"Confirmation did not match for: {', '.join(e.names)}. Nothing was deleted.", err=True)
        sys.exit(1)

    click.echo(result.message)
    if result.outcome in (BulkOutcome.FAILURE, BulkOutcome.DISABLED, BulkOutcome.NOTHING_SELECTED):
        sys.exit(1)


@cli.group('settings')
def settings():
    """Shows or changes a user's safety settings."""
    pass


@settings.command('show')
@click.option('--user-id', type=int, required=True)
@click.pass_obj
def settings_show(config, user_id: int):
    store = SettingsStore(config.database_url)
    row = store.get_settings(user_id)
    preferences = UserPreferences.from_settings(row)
    if row is None:
        click.echo(f"No saved settings for user {user_id}; defaults apply.")
    click.echo(f"require_repo_delete_confirmation: {preferences.require_repo_delete_confirmation}")
    click.echo(f"disable_bulk_operations: {preferences.disable_bulk_operations}")


@settings.command('set')
@click.option('--user-id', type=int, required=True)
@click.option('--require-confirmation/--no-require-confirmation', default=None)
@click.option('--disable-bulk/--enable-bulk', default=None)
@click.pass_obj
def settings_set(config, user_id: int, require_confirmation: Optional[bool], disable_bulk: Optional[bool]):
    store = SettingsStore(config.database_url)
    fields = {}
    if require_confirmation is not None:
        fields['require_repo_delete_confirmation'] = require_confirmation
    if disable_bulk is not None:
        fields['disable_bulk_operations'] = disable_bulk
    if store.update_settings(user_id, **fields) is None:
        click.echo(f"User {user_id} has no settings. Sign in through the web app first.", err=True)
        sys.exit(1)
    click.echo("Settings updated successfully")


if __name__ == '__main__':
    cli()
