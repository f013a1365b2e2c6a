"""
Harper CLI

Commands:
    harper chat                      Interactive chat with the configured provider
    harper chat --offline            Chat without a model (type bracket commands yourself)
    harper run "[RUN_COMMAND ls]"    Process one turn of text without a model
    harper audit                     Show recent operations of a session
    harper sessions                  List saved sessions
    harper export <id>               Export a session to txt/json
    harper verify [id]               Verify audit hash chains

Global options (--config, --log-level, --json-logs, --db) go before the
command name; policy flags (--allow-pipes, ...) belong to chat and run.
"""

from __future__ import annotations

import asyncio
from typing import Any

import click

from harper import __version__
from harper.agent.chat import ChatSession, export_to_file, format_audit_rows, format_sessions, parse_audit_args
from harper.agent.orchestrator import Orchestrator, format_feedback, raise_for_skipped
from harper.approval.workflow import ApprovalWorkflow, ConsoleApprover
from harper.audit.store import AuditStore
from harper.config import HarperConfig, load_config
from harper.core.models import Session
from harper.exceptions import ConfigError, HarperError, SessionNotFoundError
from harper.logging import configure_logging
from harper.storage.todos import TodoStore
from harper.tools.builtin import default_registry


def _policy_options(func):
    """Flags shared by commands that execute operations. Flags only ever enable."""
    options = [
        click.option("--allow-pipes", is_flag=True, help="Permit '|' in shell commands"),
        click.option("--allow-redirects", is_flag=True, help="Permit '<', '>' and '>>'"),
        click.option("--allow-subshells", is_flag=True, help="Permit '$(...)', '(', ')' and '$'"),
        click.option("--allow-background", is_flag=True, help="Permit '&'"),
        click.option("--allow-sudo", is_flag=True, help="Permit sudo"),
        click.option("--no-approval", is_flag=True, help="Do not ask before mutating operations"),
        click.option("--project-root", type=click.Path(file_okay=False), default=None, help="Directory operations are confined to"),
        click.option("--session", "session_id", default=None, help="Continue a saved session"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _policy_overrides(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "exec_policy": {
            "allow_pipes": params["allow_pipes"] or None,
            "allow_redirects": params["allow_redirects"] or None,
            "allow_subshells": params["allow_subshells"] or None,
            "allow_background": params["allow_background"] or None,
            "allow_sudo": params["allow_sudo"] or None,
            "require_approval": False if params["no_approval"] else None,
            "project_root": params["project_root"],
        }
    }


def _load(ctx: click.Context, extra: dict[str, Any] | None = None) -> HarperConfig:
    obj = ctx.obj
    overrides: dict[str, Any] = {
        "log_level": obj["log_level"],
        "json_logs": obj["json_logs"] or None,
        "storage": {"database_url": obj["db"]},
    }
    if extra:
        overrides.update(extra)
    try:
        config = load_config(obj["config_path"], overrides=overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(config.log_level, json_output=config.json_logs)
    return config


def _open_store(config: HarperConfig) -> AuditStore:
    try:
        return AuditStore(config.storage.database_url)
    except HarperError as e:
        raise click.ClickException(str(e)) from e


def _resolve_session(store: AuditStore, session_id: str | None) -> Session:
    if session_id is None:
        return Session()
    try:
        return store.session_load(session_id)
    except SessionNotFoundError as e:
        raise click.ClickException(str(e)) from e


def _build_orchestrator(config: HarperConfig, store: AuditStore) -> Orchestrator:
    policy = config.exec_policy
    return Orchestrator(
        config=policy,
        registry=default_registry(policy, todos=TodoStore(store.connection)),
        store=store,
        approval=ApprovalWorkflow(ConsoleApprover()),
    )


def _print_header(title: str) -> None:
    click.echo(f"\n  {'=' * 60}")
    click.echo(f"  {title}")
    click.echo(f"  {'=' * 60}\n")


@click.group()
@click.version_option(version=__version__, prog_name="harper")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="TOML config file")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines on stderr")
@click.option("--db", default=None, help="SQLite path or postgresql:// URL")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None, json_logs: bool, db: str | None) -> None:
    """Harper: a terminal agent with policy-checked, audited tool execution."""
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config_path, log_level=log_level, json_logs=json_logs, db=db)


@cli.command()
@_policy_options
@click.option("--offline", is_flag=True, help="No AI provider; only run commands you type")
@click.pass_context
def chat(ctx: click.Context, offline: bool, **params: Any) -> None:
    """Start an interactive chat session."""
    config = _load(ctx, _policy_overrides(params))
    provider = None
    if not offline:
        from harper.providers import create_provider

        try:
            provider = create_provider(config.require_provider())
        except ConfigError as e:
            raise click.ClickException(f"{e} (or use --offline)") from e

    store = _open_store(config)
    try:
        session = _resolve_session(store, params["session_id"])
        chat_session = ChatSession(_build_orchestrator(config, store), store, provider=provider, session=session)
        asyncio.run(chat_session.run())
    finally:
        store.close()


@cli.command()
@click.argument("text")
@_policy_options
@click.option("--save/--no-save", default=True, help="Persist the turn as a session")
@click.pass_context
def run(ctx: click.Context, text: str, save: bool, **params: Any) -> None:
    """Process one turn of TEXT (bracket commands, @file references) without a model.

    Exits with status 1 when an operation is denied or rejected. Results are
    printed and audited first.
    """
    config = _load(ctx, _policy_overrides(params))
    store = _open_store(config)
    try:
        session = _resolve_session(store, params["session_id"])
        orchestrator = _build_orchestrator(config, store)
        session.add_message("user", text)
        try:
            entries = asyncio.run(orchestrator.process_turn(session, text, source="user"))
        except HarperError as e:
            raise click.ClickException(str(e)) from e
        if not entries:
            click.echo("No operations found.")
            return
        feedback = format_feedback(entries)
        click.echo(feedback)
        session.add_message("user", feedback)
        if save:
            store.session_save(session)
            click.echo(f"\nSession: {session.id}")
        try:
            raise_for_skipped(entries)
        except HarperError as e:
            raise click.ClickException(str(e)) from e
    finally:
        store.close()


@cli.command()
@click.option("--session", "session_id", default=None, help="Session id (default: most recent)")
@click.argument("filters", nargs=-1)
@click.pass_context
def audit(ctx: click.Context, session_id: str | None, filters: tuple[str, ...]) -> None:
    """Show audit entries: harper audit [LIMIT] [STATUS] [approved|rejected]."""
    config = _load(ctx)
    store = _open_store(config)
    try:
        session_id = session_id or store.latest_session_id()
        if session_id is None:
            click.echo("No sessions found.")
            return
        try:
            limit, status, approved = parse_audit_args(list(filters))
        except ValueError as e:
            raise click.BadParameter(str(e)) from e
        _print_header(f"Audit Trail: {session_id}")
        click.echo(format_audit_rows(store.query(session_id, limit, status=status, approved=approved)))
    finally:
        store.close()


@cli.command()
@click.pass_context
def sessions(ctx: click.Context) -> None:
    """List saved sessions."""
    config = _load(ctx)
    store = _open_store(config)
    try:
        click.echo(format_sessions(store.list_sessions()))
    finally:
        store.close()


@cli.command()
@click.argument("session_id")
@click.option("--format", "fmt", type=click.Choice(["txt", "json"]), default="txt")
@click.option("--output-dir", type=click.Path(file_okay=False), default=".")
@click.pass_context
def export(ctx: click.Context, session_id: str, fmt: str, output_dir: str) -> None:
    """Export a saved session with its audit trail."""
    config = _load(ctx)
    store = _open_store(config)
    try:
        path = export_to_file(store, session_id, fmt, output_dir)
    except SessionNotFoundError as e:
        raise click.ClickException(str(e)) from e
    finally:
        store.close()
    click.echo(f"Session exported to {path}")


@cli.command()
@click.argument("session_id", required=False)
@click.pass_context
def verify(ctx: click.Context, session_id: str | None) -> None:
    """Verify the audit hash chain of one session, or of all sessions."""
    config = _load(ctx)
    store = _open_store(config)
    try:
        ids = [session_id] if session_id else [row["id"] for row in store.list_sessions()]
        _print_header("Audit Chain Verification")
        if not ids:
            click.echo("  No sessions to verify.")
            return
        broken = 0
        for sid in ids:
            ok, message = store.verify_chain(sid)
            if not ok:
                broken += 1
            click.echo(f"  {'OK    ' if ok else 'BROKEN'} {sid}  {message}")
    finally:
        store.close()
    if broken:
        raise click.ClickException(f"{broken} broken chain(s)")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
