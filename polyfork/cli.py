"""polyfork command line."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from polyfork.branching import build_branch_display_nodes
from polyfork.config import Config, ConfigError, default_config, load_config, write_config
from polyfork.errors import PolyforkError, ReplicaError, StoreError
from polyfork.existence import ConversationExistenceChecker, ExistenceCache, HttpConversationVerifier
from polyfork.fork import ForkCoordinator
from polyfork.fork_context import compose_fork_input_with_context
from polyfork.lib.json import JSONDecodeError, dumps, loads
from polyfork.lib.log import bind_command, configure_logging
from polyfork.markdown import build_fork_markdown
from polyfork.merge import merge_fork_nodes
from polyfork.models import ChatPair, ForkNode
from polyfork.storage import FileReplica, ForkNodeStore, ForkNodesService, HttpReplica, Replica, sync_replicas
from polyfork.version import POLYFORK_VERSION


@dataclass
class AppEnv:
    console: Console
    config_path: Optional[Path] = None
    store_override: Optional[Path] = None
    _config: Optional[Config] = None

    @property
    def config(self) -> Config:
        if self._config is None:
            config = load_config(self.config_path, missing_ok=True)
            if self.store_override is not None:
                config.store_path = self.store_override
            self._config = config
        return self._config

    def store(self) -> ForkNodeStore:
        return ForkNodeStore(self.config.store_path)

    def service(self) -> ForkNodesService:
        return ForkNodesService.local(self.store())


def fail(command: str, message: str) -> NoReturn:
    raise SystemExit(f"{command}: {message}")


def _config_or_fail(env: AppEnv, command: str) -> Config:
    try:
        return env.config
    except ConfigError as exc:
        fail(command, str(exc))


def _node_table(title: str, nodes: list[ForkNode], *, numbered: bool = False) -> Table:
    table = Table(title=title)
    if numbered:
        table.add_column("#", justify="right")
    table.add_column("Conversation")
    table.add_column("Turn")
    table.add_column("Group")
    table.add_column("Index", justify="right")
    table.add_column("Title")
    for position, node in enumerate(nodes, start=1):
        row = [
            node.conversation_id,
            node.turn_id,
            node.fork_group_id,
            str(node.fork_index),
            node.conversation_title or "",
        ]
        if numbered:
            row.insert(0, str(position))
        table.add_row(*row)
    return table


def _read_json_file(path: Path) -> object:
    """Load a replica file for merging; unreadable content merges as empty."""
    try:
        return loads(path.read_bytes())
    except (OSError, JSONDecodeError):
        return None


@contextmanager
def _open_replica(remote: str) -> Iterator[Replica]:
    if remote.startswith(("http://", "https://")):
        with HttpReplica(remote) as replica:
            yield replica
    else:
        yield FileReplica(Path(remote).expanduser())


def _load_pairs(path: Path) -> tuple[Optional[str], list[ChatPair]]:
    """Read a transcript: a list of pairs, or ``{"title": ..., "pairs": [...]}``."""
    raw = loads(path.read_bytes())
    title = None
    if isinstance(raw, dict):
        title = raw.get("title") if isinstance(raw.get("title"), str) else None
        raw = raw.get("pairs")
    if not isinstance(raw, list):
        raise ValueError("transcript must be a list of turns")
    pairs = []
    for index, entry in enumerate(raw):
        if isinstance(entry, dict) and "turnId" not in entry and "turn_id" not in entry:
            entry = {**entry, "turnId": f"u-{index}"}
        pairs.append(ChatPair.model_validate(entry))
    return title, pairs


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config.json")
@click.option("--store", "store_path", type=click.Path(path_type=Path), help="Fork node store file")
@click.version_option(POLYFORK_VERSION, prog_name="polyfork")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    json_logs: bool,
    config_path: Optional[Path],
    store_path: Optional[Path],
) -> None:
    """Branch conversations and keep their fork graph in sync."""
    configure_logging(verbose=verbose, json_logs=json_logs)
    if ctx.invoked_subcommand:
        bind_command(ctx.invoked_subcommand)
    ctx.obj = AppEnv(
        console=Console(highlight=False, soft_wrap=True, emoji=False),
        config_path=config_path,
        store_override=store_path.expanduser() if store_path else None,
    )


@cli.command()
@click.argument("conversation_id")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.option("--prune", is_flag=True, help="Check linked conversations and drop the deleted ones")
@click.pass_obj
def show(env: AppEnv, conversation_id: str, json_output: bool, prune: bool) -> None:
    """List the fork nodes and numbered branches of a conversation."""
    config = _config_or_fail(env, "show")
    service = env.service()
    coordinator = ForkCoordinator(service)
    try:
        if prune:
            with HttpConversationVerifier(timeout_ms=config.verify_timeout_ms) as verifier:
                checker = ConversationExistenceChecker(ExistenceCache(config.existence_ttl_ms), verifier)
                indicators = coordinator.branch_indicators(conversation_id, checker=checker)
        else:
            indicators = coordinator.branch_indicators(conversation_id)
        nodes = service.get_for_conversation(conversation_id)
    except StoreError as exc:
        fail("show", str(exc))
    if json_output:
        payload = {
            "conversationId": conversation_id,
            "nodes": [node.to_payload() for node in nodes],
            "branches": {
                turn_id: [
                    {"number": item.number, "current": item.is_current, **item.node.to_payload()}
                    for item in items
                ]
                for turn_id, items in indicators.items()
            },
        }
        click.echo(dumps(payload, indent=True))
        return
    if not nodes:
        env.console.print(f"No fork nodes for {conversation_id}.")
        return
    env.console.print(_node_table(f"Fork nodes ({conversation_id})", nodes))
    for turn_id, items in indicators.items():
        labels = [f"[bold]{item.number}[/bold]" if item.is_current else str(item.number) for item in items]
        env.console.print(f"{turn_id}: branches {' '.join(labels)}")


@cli.command()
@click.argument("group_id")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def group(env: AppEnv, group_id: str, json_output: bool) -> None:
    """Show a fork group as numbered branches."""
    _config_or_fail(env, "group")
    try:
        nodes = build_branch_display_nodes([env.service().get_group(group_id)])
    except StoreError as exc:
        fail("group", str(exc))
    if json_output:
        click.echo(dumps([node.to_payload() for node in nodes], indent=True))
        return
    if not nodes:
        env.console.print(f"No fork group {group_id}.")
        return
    env.console.print(_node_table(f"Fork group {group_id}", nodes, numbered=True))


@cli.command()
@click.argument("conversation_id")
@click.argument("turn_id")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def plan(env: AppEnv, conversation_id: str, turn_id: str, json_output: bool) -> None:
    """Show which group and index a new fork at TURN_ID would get."""
    _config_or_fail(env, "plan")
    try:
        fork_plan = ForkCoordinator(env.service()).plan_fork(conversation_id, turn_id)
    except StoreError as exc:
        fail("plan", str(exc))
    payload = {
        "forkGroupId": fork_plan.fork_group_id,
        "sourceForkIndex": fork_plan.source_fork_index,
        "nextForkIndex": fork_plan.next_fork_index,
    }
    if json_output:
        click.echo(dumps(payload, indent=True))
        return
    env.console.print(f"Group: {fork_plan.fork_group_id}")
    env.console.print(f"Source index: {fork_plan.source_fork_index}")
    env.console.print(f"Next index: {fork_plan.next_fork_index}")


@cli.command()
@click.argument("conversation_id")
@click.argument("turn_id")
@click.argument("group_id")
@click.pass_obj
def remove(env: AppEnv, conversation_id: str, turn_id: str, group_id: str) -> None:
    """Remove one fork node from the store."""
    _config_or_fail(env, "remove")
    try:
        removed = env.service().remove_fork_node(conversation_id, turn_id, group_id)
    except StoreError as exc:
        fail("remove", str(exc))
    if removed:
        env.console.print(f"Removed {conversation_id}:{turn_id} from {group_id}")
    else:
        env.console.print("Nothing to remove.")


@cli.command()
@click.argument("local", type=click.Path(path_type=Path))
@click.argument("cloud", type=click.Path(path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Write the merged dataset to a file")
@click.pass_obj
def merge(env: AppEnv, local: Path, cloud: Path, output: Optional[Path]) -> None:
    """Merge two fork node files; LOCAL wins timestamp ties."""
    merged = merge_fork_nodes(_read_json_file(local), _read_json_file(cloud))
    body = dumps(merged.to_payload(), indent=True)
    if output is None:
        click.echo(body)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(body + "\n", encoding="utf-8")
    env.console.print(f"Wrote {merged.node_count} node(s) in {len(merged.groups)} group(s) to {output}")


@cli.command()
@click.argument("remote", required=False)
@click.option("--retries", type=click.IntRange(min=0), help="Extra attempts when the remote is unreachable")
@click.pass_obj
def sync(env: AppEnv, remote: Optional[str], retries: Optional[int]) -> None:
    """Reconcile the local store with REMOTE (a file path or http(s) URL)."""
    config = _config_or_fail(env, "sync")
    target = remote or config.remote
    if not target:
        fail("sync", "no remote given and none configured")
    try:
        with _open_replica(target) as replica:
            result = sync_replicas(
                env.store(),
                replica,
                retries=config.sync_retries if retries is None else retries,
            )
    except (ReplicaError, StoreError) as exc:
        fail("sync", str(exc))
    env.console.print(
        f"Synced {target}: local {result.local_nodes}, remote {result.remote_nodes}, "
        f"merged {result.merged_nodes} node(s) in {result.groups} group(s)"
    )


@cli.command()
@click.argument("transcript", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", help="Title for the transcript heading")
@click.option("--turn", "turn_index", type=click.IntRange(min=0), help="Fork at this user turn (default: last)")
@click.option("--language", help="Language of the branch preamble")
@click.option("--keep-last-assistant", is_flag=True, help="Keep the reply of the fork turn")
@click.pass_obj
def compose(
    env: AppEnv,
    transcript: Path,
    title: Optional[str],
    turn_index: Optional[int],
    language: Optional[str],
    keep_last_assistant: bool,
) -> None:
    """Print the input that seeds a new branch of TRANSCRIPT."""
    config = _config_or_fail(env, "compose")
    if not config.fork_enabled:
        fail("compose", "forking is disabled; enable it with 'polyfork config init --enable-fork'")
    try:
        stored_title, pairs = _load_pairs(transcript)
    except (JSONDecodeError, ValueError, ValidationError) as exc:
        fail("compose", f"cannot read {transcript}: {exc}")
    if turn_index is not None and turn_index >= len(pairs):
        fail("compose", f"turn {turn_index} out of range ({len(pairs)} turn(s))")
    end = len(pairs) if turn_index is None else turn_index + 1
    markdown = build_fork_markdown(
        title or stored_title,
        [pair.as_turn() for pair in pairs[:end]],
        not keep_last_assistant,
    )
    if not markdown:
        fail("compose", "transcript has no turns")
    click.echo(compose_fork_input_with_context(markdown, language or config.language), nl=False)


@cli.group("config")
def config_group() -> None:
    """Configuration commands."""


@config_group.command("init")
@click.option("--remote", help="Default replica for sync")
@click.option("--language", help="Default preamble language")
@click.option("--enable-fork", is_flag=True, help="Turn the fork feature on")
@click.pass_obj
def config_init(env: AppEnv, remote: Optional[str], language: Optional[str], enable_fork: bool) -> None:
    config = default_config(env.config_path)
    if config.path.exists():
        fail("config init", f"config already exists at {config.path}")
    if env.store_override is not None:
        config.store_path = env.store_override
    config.remote = remote
    config.language = language
    config.fork_enabled = enable_fork
    write_config(config)
    env.console.print(f"Config written to {config.path}")


@config_group.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def config_show(env: AppEnv, json_output: bool) -> None:
    config = _config_or_fail(env, "config show")
    if json_output:
        payload = config.as_dict()
        payload["path"] = str(config.path)
        click.echo(dumps(payload, indent=True))
        return
    env.console.print(f"Path: {config.path}")
    env.console.print(f"Store: {config.store_path}")
    env.console.print(f"Remote: {config.remote or 'none'}")
    env.console.print(f"Fork enabled: {'yes' if config.fork_enabled else 'no'}")


def main() -> None:
    try:
        cli()
    except PolyforkError as exc:
        raise SystemExit(f"polyfork: {exc}") from exc


__all__ = ["cli", "main"]
