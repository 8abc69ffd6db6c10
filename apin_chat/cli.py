"""
apin-chat CLI — chat with the on-device model from the terminal.

Registered as `apin-chat` console script via pyproject.toml.
"""

import asyncio
from pathlib import Path

import click

from .availability import StatusCategory, describe_availability, status_category
from .config import Settings
from .exceptions import ApinChatError, ModelUnavailableError, StoreBusyError
from .gateway import FoundationModelGateway, ModelGateway
from .log import configure_logging
from .models import GenerationProfile, Session
from .persistence import BlobStore, SessionPersistence
from .store import SessionStore

ACTIVE_KEY = "active_chat"
ID_PREFIX_CHARS = 8

_STATUS_COLORS = {
    StatusCategory.READY: "green",
    StatusCategory.DOWNLOADING: "yellow",
    StatusCategory.DISABLED: "yellow",
    StatusCategory.ERROR: "red",
}


def _make_gateway() -> ModelGateway:
    """Build the Foundation Models gateway, with install guidance when the SDK is missing."""
    try:
        return FoundationModelGateway()
    except ModuleNotFoundError as exc:
        raise click.ClickException(
            "'apple-fm-sdk' is not installed. Install the Apple Foundation Models SDK "
            "(pip install 'apin-chat[apple]') on macOS with Apple Intelligence enabled."
        ) from exc


class _Workspace:
    """Store, blob store and remembered selection for one CLI invocation."""

    def __init__(self, settings: Settings, gateway: ModelGateway):
        self.blobs = BlobStore(settings.db_path)
        self.store = SessionStore(
            gateway,
            SessionPersistence(self.blobs, key=settings.storage_key),
            profile=settings.profile,
        )
        self.store.restore()
        remembered = self.blobs.get(ACTIVE_KEY)
        if remembered:
            self.store.select_session(remembered.decode("utf-8"))

    def remember_active(self) -> None:
        active = self.store.active_session_id
        if active is None:
            self.blobs.delete(ACTIVE_KEY)
        else:
            self.blobs.put(ACTIVE_KEY, active.encode("utf-8"))

    def resolve(self, session_ref: str) -> Session:
        """Find a session by full id or unique id prefix."""
        matches = [s for s in self.store.sessions if s.id.startswith(session_ref.strip())]
        if not matches:
            raise click.BadParameter(f"no chat matches '{session_ref}'.", param_hint="ID")
        if len(matches) > 1:
            raise click.BadParameter(f"'{session_ref}' matches several chats.", param_hint="ID")
        return matches[0]

    def close(self) -> None:
        self.remember_active()
        self.blobs.close()


def _workspace(ctx: click.Context) -> _Workspace:
    settings: Settings = ctx.obj["settings"]
    workspace = _Workspace(settings, ctx.obj["gateway_factory"]())
    ctx.call_on_close(workspace.close)
    return workspace


def _print_transcript(session: Session) -> None:
    click.secho(f"\n{session.title}\n", fg="cyan", bold=True)
    if session.is_empty:
        click.echo("  (no messages yet)")
        return
    for turn in session.turns:
        label = "You" if turn.is_user else "Assistant"
        color = "blue" if turn.is_user else "green"
        content = "…" if turn.pending else turn.content
        click.secho(f"{label}:", fg=color, bold=True)
        click.echo(f"  {content}\n")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="apin-chat")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding chat history (defaults to APIN_CHAT_DATA_DIR or ~/.apin_chat).",
)
@click.option("--log-level", default=None, help="Logging level (debug, info, warning, ...).")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, log_level: str | None) -> None:
    """apin-chat — local multi-session chat on Apple Foundation Models."""
    settings = Settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    configure_logging(log_level, fallback=settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj.setdefault("gateway_factory", _make_gateway)


# ── Model status ──────────────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether the on-device model is ready."""
    gateway: ModelGateway = ctx.obj["gateway_factory"]()
    availability = gateway.availability()
    category = status_category(availability)
    click.secho(f"[{category.value}] ", fg=_STATUS_COLORS[category], bold=True, nl=False)
    click.echo(describe_availability(availability))
    if category is not StatusCategory.READY:
        raise SystemExit(1)


# ── Sessions ──────────────────────────────────────────────────────────────────


@cli.command(name="list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List saved chats."""
    workspace = _workspace(ctx)
    sessions = workspace.store.sessions
    if not sessions:
        click.secho("No chats yet. Start one with: apin-chat new", fg="yellow")
        return
    active_id = workspace.store.active_session_id
    click.secho(f"\n  {'ID':<10}{'Title':<32}{'Turns':<7}Last message", fg="cyan")
    click.secho(f"  {'─' * 9} {'─' * 31} {'─' * 6} {'─' * 30}", fg="cyan")
    for session in sessions:
        marker = "*" if session.id == active_id else " "
        preview = session.last_message.replace("\n", " ")
        if len(preview) > 40:
            preview = preview[:39] + "…"
        click.echo(
            f"{marker} {session.id[:ID_PREFIX_CHARS]:<10}{session.title:<32}"
            f"{len(session.turns):<7}{preview}"
        )
    click.echo()


@cli.command()
@click.pass_context
def new(ctx: click.Context) -> None:
    """Start a new chat and make it active."""
    workspace = _workspace(ctx)
    session = workspace.store.create_session()
    click.secho(f"Created chat {session.id[:ID_PREFIX_CHARS]} ({session.title}).", fg="green")


@cli.command()
@click.argument("session_ref", metavar="ID")
@click.pass_context
def select(ctx: click.Context, session_ref: str) -> None:
    """Make chat ID (or a unique id prefix) active."""
    workspace = _workspace(ctx)
    session = workspace.resolve(session_ref)
    workspace.store.select_session(session.id)
    click.secho(f"Active chat: {session.title}", fg="green")


@cli.command()
@click.argument("session_ref", metavar="ID")
@click.pass_context
def delete(ctx: click.Context, session_ref: str) -> None:
    """Delete chat ID (or a unique id prefix)."""
    workspace = _workspace(ctx)
    session = workspace.resolve(session_ref)
    workspace.store.delete_session(session.id)
    click.secho(f"Deleted chat {session.title}.", fg="green")
    if not workspace.store.sessions:
        click.echo("No chats left. Start one with: apin-chat new")


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Delete all chats and start over with an empty one."""
    if not yes:
        click.confirm(
            "Are you sure you want to delete all chats? This action cannot be undone.",
            abort=True,
        )
    workspace = _workspace(ctx)
    workspace.store.clear_all()
    click.secho("All chats cleared.", fg="green")


@cli.command()
@click.option("--session", "session_ref", default=None, help="Chat ID or id prefix.")
@click.pass_context
def show(ctx: click.Context, session_ref: str | None) -> None:
    """Print the transcript of the active chat."""
    workspace = _workspace(ctx)
    session = workspace.resolve(session_ref) if session_ref else workspace.store.active_session
    if session is None:
        click.secho("No active chat. Start one with: apin-chat new", fg="yellow")
        return
    _print_transcript(session)


# ── Messaging ─────────────────────────────────────────────────────────────────


async def _send_and_wait(store: SessionStore, text: str) -> Session | None:
    task = store.send_message(text)
    if task is None:
        return None
    await store.wait_idle()
    return store.active_session


@cli.command()
@click.argument("text", nargs=-1, required=True)
@click.option(
    "--profile",
    type=click.Choice([profile.label for profile in GenerationProfile], case_sensitive=False),
    default=None,
    help="Generation profile for this message.",
)
@click.option("--session", "session_ref", default=None, help="Chat ID or id prefix.")
@click.pass_context
def send(
    ctx: click.Context, text: tuple[str, ...], profile: str | None, session_ref: str | None
) -> None:
    """Send TEXT to the active chat and print the reply.

    \b
    Examples:
        apin-chat send "What is a neural engine?"
        apin-chat send --profile creative Write a haiku about tea
    """
    workspace = _workspace(ctx)
    store = workspace.store
    if session_ref:
        store.select_session(workspace.resolve(session_ref).id)
    if store.active_session is None:
        store.create_session()
    if profile:
        store.set_profile(GenerationProfile.from_label(profile))

    message = " ".join(text)
    try:
        session = asyncio.run(_send_and_wait(store, message))
    except ModelUnavailableError as exc:
        click.secho(
            f"Model unavailable. {describe_availability(exc.availability)}", fg="red", err=True
        )
        raise SystemExit(2) from exc
    except StoreBusyError as exc:
        click.secho(str(exc), fg="yellow", err=True)
        raise SystemExit(1) from exc

    if session is None:
        click.secho("Type a message first.", fg="yellow", err=True)
        raise SystemExit(1)
    click.secho(f"{session.title}", fg="cyan", bold=True)
    click.echo(session.last_message)


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except ApinChatError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
