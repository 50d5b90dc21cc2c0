"""Main CLI entry point for KOH Backup.

Run without a subcommand for the interactive main menu, or call ``backup``,
``restore`` and ``list`` directly. Options given on the command line replace
the matching interactive prompt; the restore confirmation is always asked.
"""

from typing import Optional

import click

from kohbackup import __version__
from kohbackup.utils.errors import EXIT_OK, EXIT_SETUP, ErrorHandler, KohBackupError
from kohbackup.utils.logging import setup_logging

BANNER = f"=== KOH Backup & Restore (v{__version__}) ==="


def _load_settings(ctx: click.Context):
    """Load settings once per invocation; exits with code 1 on bad config."""
    if "settings" not in ctx.obj:
        from kohbackup.config import ConfigManager

        try:
            ctx.obj["settings"] = ConfigManager(ctx.obj["config_path"]).load_settings()
        except KohBackupError as e:
            ctx.obj["error_handler"].exit_with_error(e, "Loading configuration")
    return ctx.obj["settings"]


def _chooser(ctx: click.Context):
    from kohbackup.utils.prompts import ClickChooser

    return ClickChooser(max_attempts=_load_settings(ctx).max_prompt_attempts)


def _print_banner() -> None:
    line = "=" * len(BANNER)
    click.secho(f"{line}\n{BANNER}\n{line}", fg="green")


def _run_backup(ctx: click.Context, project: Optional[str] = None, mode: Optional[str] = None) -> int:
    from kohbackup.backup import BackupManager

    manager = BackupManager(_load_settings(ctx), _chooser(ctx), verbose=ctx.obj["verbose"])
    code = manager.run(project=project, mode=mode)
    if code == EXIT_OK:
        click.secho("=== BACKUP COMPLETED SUCCESSFULLY ===", fg="green")
    return code


def _run_restore(ctx: click.Context, project: Optional[str] = None, backup: Optional[str] = None) -> int:
    from kohbackup.backup import RecoveryManager

    manager = RecoveryManager(_load_settings(ctx), _chooser(ctx), verbose=ctx.obj["verbose"])
    return manager.run(project=project, timestamp=backup)


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="KOH_BACKUP_CONFIG",
    help="Configuration file (default: ~/.config/koh-backup/koh-backup.yml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--no-color", is_flag=True, help="Disable colored log output")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool, no_color: bool) -> None:
    """KOH Backup - backup and restore of web shop projects.

    Each project is a directory below the project root with a MySQL database
    configured in its PHP config file. Backups land in
    <backup_root>/bak.<project>/<timestamp>/.

    Without a command the interactive main menu is shown.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose, color=not no_color)

    if ctx.invoked_subcommand is None:
        ctx.invoke(menu)


@cli.command()
@click.pass_context
def menu(ctx: click.Context) -> None:
    """Show the interactive main menu (Backup / Restore / Exit)."""
    settings = _load_settings(ctx)
    _print_banner()

    from kohbackup.utils.prompts import ClickChooser

    chooser = ClickChooser(max_attempts=settings.max_prompt_attempts)
    choice = chooser.choose("Please choose an action:", ["Create backup", "Restore backup", "Exit"])

    if choice is None:
        ctx.exit(EXIT_SETUP)
    elif choice == 0:
        ctx.exit(_run_backup(ctx))
    elif choice == 1:
        ctx.exit(_run_restore(ctx))
    else:
        click.echo("Exiting.")
        ctx.exit(EXIT_OK)


@cli.command()
@click.option("--project", "-p", help="Project directory name (asked if omitted)")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(["all", "web_only", "media_only"]),
    help="What to archive besides the database (asked if omitted)",
)
@click.pass_context
def backup(ctx: click.Context, project: Optional[str], mode: Optional[str]) -> None:
    """Create a backup set: database dump, web and/or media archive.

    Exit codes: 0 success, 1 setup error, 2 database dump failed,
    3 web archive failed, 4 media archive failed.
    """
    ctx.exit(_run_backup(ctx, project=project, mode=mode))


@cli.command()
@click.option("--project", "-p", help="Project directory name (asked if omitted)")
@click.option("--backup", "-b", "backup_timestamp", help="Backup timestamp YYYYMMDD_HHMMSS (asked if omitted)")
@click.pass_context
def restore(ctx: click.Context, project: Optional[str], backup_timestamp: Optional[str]) -> None:
    """Restore a project from a backup set, replacing database and files.

    The run only proceeds after typing 'ja' at the confirmation prompt;
    any other answer cancels with exit code 0.

    Exit codes: 0 success or cancelled, 1 setup error, 5 database restore
    failed, 6 web file restore failed, 7 media file restore failed.
    """
    ctx.exit(_run_restore(ctx, project=project, backup=backup_timestamp))


@cli.command(name="list")
@click.option("--project", "-p", help="Only list this project")
@click.pass_context
def list_backups(ctx: click.Context, project: Optional[str]) -> None:
    """List backup sets per project, newest first."""
    from kohbackup.backup import ArtifactStore
    from kohbackup.backup.manager import list_projects
    from kohbackup.backup.recovery import describe_backup_set

    settings = _load_settings(ctx)
    store = ArtifactStore(settings.backup_root, compressor=settings.compressor)

    try:
        projects = [project] if project else list_projects(settings)
    except KohBackupError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Listing projects")

    for name in projects:
        backup_sets = store.list_backup_sets(name)
        click.echo(f"{name}:")
        if not backup_sets:
            click.echo("  (no backups)")
            continue
        for backup_set in backup_sets:
            sizes = ", ".join(f"{label} {size}" for label, size in store.artifact_sizes(backup_set))
            click.echo(f"  {describe_backup_set(backup_set)}  {sizes}")


@cli.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def config(ctx: click.Context) -> None:
    """Manage the KOH Backup configuration file."""
    pass


@config.command(name="init")
@click.option("--project-root", help="Directory holding the projects")
@click.option("--backup-root", help="Directory receiving the backups")
@click.option("--max-backups", type=click.IntRange(min=0), help="Backup sets kept per project")
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
@click.pass_context
def config_init(
    ctx: click.Context,
    project_root: Optional[str],
    backup_root: Optional[str],
    max_backups: Optional[int],
    force: bool,
) -> None:
    """Write a commented default configuration file."""
    from kohbackup.config import ConfigManager

    overrides = {}
    if project_root:
        overrides["project_root"] = project_root
    if backup_root:
        overrides["backup_root"] = backup_root
    if max_backups is not None:
        overrides["max_backups"] = max_backups

    try:
        path = ConfigManager(ctx.obj["config_path"]).initialize_config(overrides, force=force)
    except KohBackupError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Writing configuration")

    click.echo(f"✓ Configuration written to {path}")


@config.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration."""
    from kohbackup.config import ConfigManager

    try:
        click.echo(ConfigManager(ctx.obj["config_path"]).dump_config(), nl=False)
    except KohBackupError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Loading configuration")


if __name__ == "__main__":
    cli()
