"""Command line interface for running and observing local agents."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .core.notifications import save_read_marker
from .exceptions import MatrixError
from .models import AgentStatus, Event, MessageFilter, NotificationFile, ReadMarker, now_ms
from .models.agents import project_display_name
from .node import MatrixNode
from .transport.filesystem import AgentDirectory, FilesystemTransport, FilesystemTransportConfig
from .utils.identity import derive_agent_id, is_valid_session_id, validate_agent_id
from .version import __version__

logger = logging.getLogger(__name__)

NOTIFY_MAX_ITEMS = 5


def _format_ts(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _format_age(age_ms: int) -> str:
    seconds = max(age_ms // 1000, 0)
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h ago"


class MatrixCLI:
    """Read-only view into the shared directory.

    Reads directly from the filesystem, no running node is required.

    Args:
        config: Transport configuration pointing at the data root.
        agent_id: Agent the view is rendered for, if known.
    """

    def __init__(self, config: FilesystemTransportConfig, agent_id: Optional[str] = None) -> None:
        self._config = config
        self._agent_id = agent_id
        self._directory = AgentDirectory(config.agents_dir, config)

    def load_notifications(self) -> Optional[NotificationFile]:
        """Current notification snapshot, None when missing or unreadable.

        Mail already read through the ``inbox`` command is left out, even
        if no server process has rewritten the snapshot since.
        """
        if self._agent_id is None:
            return None
        path = self._config.notification_file(self._agent_id)
        try:
            snapshot = NotificationFile.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.debug("No usable notification file at %s: %s", path, exc)
            return None
        marker_path = self._config.read_marker_file(self._agent_id)
        try:
            marker = ReadMarker.model_validate_json(marker_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, ValidationError):
            return snapshot
        return snapshot.unread_after(marker.read_through)

    async def get_state(self) -> Dict[str, Any]:
        """Read current state from the filesystem.

        Returns:
            Dict with ``agents`` (discovered records), ``self_id`` and
            ``unread`` (count from the notification snapshot).
        """
        agents = await self._directory.discover()
        notifications = self.load_notifications()
        return {
            "agents": agents,
            "self_id": self._agent_id,
            "unread": notifications.unread_count if notifications else 0,
        }

    def render_text(self, state: Dict[str, Any]) -> str:
        lines: List[str] = []
        agents = state.get("agents", [])
        now = now_ms()
        lines.append(f"{len(agents)} agent(s) registered")
        for agent in agents:
            marker = " (you)" if agent.agent_id == state.get("self_id") else ""
            lines.append(
                f"  [{agent.status.value}] {agent.agent_id}{marker}  "
                f"{agent.display_name}  last seen {_format_age(now - agent.last_heartbeat)}"
            )
        if not agents:
            lines.append("  (no agents registered)")
        return "\n".join(lines)

    def render_rich(self, state: Dict[str, Any], console: Optional[Console] = None) -> None:
        console = console or Console()
        agents = state.get("agents", [])
        now = now_ms()
        console.rule("[bold]LocalMatrix agents[/bold]")
        if not agents:
            console.print("  [dim](no agents registered)[/dim]")
            return
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Agent")
        table.add_column("Status")
        table.add_column("Project")
        table.add_column("PID")
        table.add_column("Last seen")
        for agent in agents:
            name = agent.agent_id
            if agent.agent_id == state.get("self_id"):
                name += " [bold](you)[/bold]"
            colour = "green" if agent.status is AgentStatus.ONLINE else "yellow"
            table.add_row(
                name,
                f"[{colour}]{agent.status.value}[/{colour}]",
                agent.project_dir,
                str(agent.pid),
                _format_age(now - agent.last_heartbeat),
            )
        console.print(table)


class CLIContext:
    """Identity and configuration shared by every command."""

    def __init__(
        self,
        data_dir: Optional[Path],
        session_id: Optional[str],
        project_dir: Optional[str],
        agent_id: Optional[str],
    ) -> None:
        self.config = (
            FilesystemTransportConfig(data_dir=data_dir)
            if data_dir is not None
            else FilesystemTransportConfig()
        )
        self.hostname = socket.gethostname()
        self.session_id = session_id if is_valid_session_id(session_id) else None
        if session_id and self.session_id is None:
            logger.warning("Ignoring malformed session id %r", session_id)
        self.project_dir = project_dir or os.getcwd()
        self.explicit_agent_id = validate_agent_id(agent_id) if agent_id else None

    @property
    def has_identity(self) -> bool:
        return bool(self.explicit_agent_id or self.session_id)

    @property
    def agent_id(self) -> str:
        if self.explicit_agent_id:
            return self.explicit_agent_id
        return derive_agent_id(self.hostname, session_id=self.session_id, pid=os.getpid())

    def node(self) -> MatrixNode:
        return MatrixNode(
            self.agent_id,
            session_id=self.session_id,
            project_dir=self.project_dir,
            config=self.config,
            hostname=self.hostname,
        )

    def require_identity(self) -> str:
        if not self.has_identity:
            raise click.UsageError(
                "No agent identity: pass --agent-id or --session-id "
                "(or set LOCALMATRIX_SESSION_ID)."
            )
        return self.agent_id


@click.group("localmatrix")
@click.version_option(__version__, prog_name="localmatrix")
@click.option(
    "--data-dir",
    envvar="LOCALMATRIX_DATA_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Data root (default ~/.localmatrix).",
)
@click.option(
    "--session-id",
    envvar=["LOCALMATRIX_SESSION_ID", "CLAUDE_SESSION_ID"],
    default=None,
    help="Session id the agent id is derived from.",
)
@click.option(
    "--project-dir",
    envvar=["LOCALMATRIX_PROJECT_DIR", "CLAUDE_PROJECT_DIR"],
    default=None,
    help="Project directory advertised to other agents (default cwd).",
)
@click.option("--agent-id", default=None, help="Explicit agent id, overrides derivation.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(
    ctx: click.Context,
    data_dir: Optional[Path],
    session_id: Optional[str],
    project_dir: Optional[str],
    agent_id: Optional[str],
    log_level: str,
) -> None:
    """LocalMatrix: agent discovery and messaging over a shared directory."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s │ %(name)-35s │ %(levelname)-7s │ %(message)s",
    )
    try:
        ctx.obj = CLIContext(data_dir, session_id, project_dir, agent_id)
    except (MatrixError, ValidationError) as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.pass_obj
def serve(obj: CLIContext) -> None:
    """Run this agent until SIGINT or SIGTERM."""
    try:
        node = obj.node()
    except MatrixError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Serving {node.agent_id} from {obj.config.data_dir} (Ctrl-C to stop)")
    asyncio.run(node.run_until_signal())


@cli.command()
@click.option("--plain", is_flag=True, help="Plain text instead of a table.")
@click.pass_obj
def agents(obj: CLIContext, plain: bool) -> None:
    """List discovered agents."""
    view = MatrixCLI(obj.config, obj.agent_id if obj.has_identity else None)
    state = asyncio.run(view.get_state())
    if plain:
        click.echo(view.render_text(state))
    else:
        view.render_rich(state)


@cli.command()
@click.argument("to")
@click.argument("message")
@click.pass_obj
def send(obj: CLIContext, to: str, message: str) -> None:
    """Send MESSAGE to agent TO."""

    async def _do_send() -> str:
        node = obj.node()
        # Send without registering: a live server may own this agent id.
        await node.transport.start()
        try:
            event = await node.send_message(to, message)
        finally:
            await node.transport.stop()
        return event.event_id

    try:
        event_id = asyncio.run(_do_send())
    except MatrixError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Sent {event_id} to {to}")


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--since", "since_ts", type=int, default=None, help="Only messages at or after this ms timestamp.")
@click.option("--from", "from_agent", default=None, help="Only messages from this agent.")
@click.pass_obj
def inbox(obj: CLIContext, limit: int, since_ts: Optional[int], from_agent: Optional[str]) -> None:
    """Print the most recent messages in this agent's mailbox and mark them read."""
    agent_id = obj.require_identity()
    transport = FilesystemTransport(agent_id, obj.config, hostname=obj.hostname)

    async def _do_read() -> List[Event]:
        messages = await transport.read_messages(
            agent_id,
            MessageFilter(limit=limit, since_ts=since_ts, from_agent=from_agent),
        )
        if messages:
            read_through = max(event.origin_server_ts for event in messages)
            try:
                await save_read_marker(
                    obj.config.read_marker_file(agent_id),
                    agent_id,
                    read_through,
                    temp_prefix=obj.config.temp_prefix,
                )
            except OSError as exc:
                logger.warning("Could not mark mail of %s as read: %s", agent_id, exc)
        return messages

    messages = asyncio.run(_do_read())
    if not messages:
        click.echo("No messages.")
        return
    for event in messages:
        click.echo(f"[{_format_ts(event.origin_server_ts)}] {event.sender}: {event.body or ''}")
    click.echo(f"{len(messages)} message(s)")


@cli.command()
@click.pass_obj
def notify(obj: CLIContext) -> None:
    """Summarize unread mail; silent when there is none."""
    if not obj.has_identity:
        return
    snapshot = MatrixCLI(obj.config, obj.agent_id).load_notifications()
    if snapshot is None or snapshot.unread_count == 0:
        return
    click.echo(f"📬 {snapshot.unread_count} unread message(s) from other agents:")
    for summary in snapshot.summaries[-NOTIFY_MAX_ITEMS:]:
        project = project_display_name(summary.from_project_dir)
        click.echo(f"  - {summary.from_display} ({project}): {summary.preview}")
    hidden = snapshot.unread_count - min(len(snapshot.summaries), NOTIFY_MAX_ITEMS)
    if hidden > 0:
        click.echo(f"  ... and {hidden} more")
    click.echo("Use `localmatrix inbox` to read them.")


@cli.command()
@click.pass_obj
def whoami(obj: CLIContext) -> None:
    """Show this agent's identity, its live peers and unread count."""
    agent_id = obj.agent_id
    view = MatrixCLI(obj.config, agent_id)
    state = asyncio.run(view.get_state())
    click.echo(f"Agent: {agent_id}")
    click.echo(f"Project: {obj.project_dir}")
    peers = [
        a for a in state["agents"]
        if a.agent_id != agent_id and a.status is AgentStatus.ONLINE
    ]
    if peers:
        click.echo(f"Other agents online ({len(peers)}):")
        for agent in peers:
            click.echo(f"  - {agent.agent_id} ({agent.display_name})")
    else:
        click.echo("No other agents online.")
    click.echo(f"Unread: {state['unread']}")


@cli.command()
@click.pass_obj
def cleanup(obj: CLIContext) -> None:
    """Remove this agent's record, notification file and mailbox."""
    agent_id = obj.require_identity()
    transport = FilesystemTransport(agent_id, obj.config, hostname=obj.hostname)

    async def _do_cleanup() -> int:
        await transport.unregister_agent(agent_id)
        transport.remove_notifications(agent_id)
        return await transport.purge_mailbox(agent_id)

    removed = asyncio.run(_do_cleanup())
    click.echo(f"Cleaned up {agent_id} ({removed} message(s) removed)")


if __name__ == "__main__":
    cli()
