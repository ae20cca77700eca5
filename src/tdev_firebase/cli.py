#!/usr/bin/env python3
"""
Command-line interface for the Firebase adapters.

Usage:
    tdev-firebase rtdb get users/u1
    tdev-firebase rtdb set counters/c1 42
    tdev-firebase rtdb push messages '{"text": "hi"}'
    tdev-firebase rtdb watch counters/c1 --limit 5
    tdev-firebase firestore get users u1
    tdev-firebase firestore list users --limit 10
    tdev-firebase firestore set users u1 @user.json
    tdev-firebase messaging subscribe news --token <FCM token>
    tdev-firebase --config firebase.yaml rtdb get /
    tdev-firebase --version
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import typer

from tdev_firebase import __version__
from tdev_firebase.errors import AdapterError
from tdev_firebase.firestore import FirestoreService
from tdev_firebase.notification import NotificationService
from tdev_firebase.realtime import RealtimeService
from tdev_firebase.settings import FirebaseSettings, load_settings_file

T = TypeVar("T")

app = typer.Typer(
    name="tdev-firebase",
    help="Realtime Database, Firestore and Cloud Messaging from the command line",
    no_args_is_help=True,
    add_completion=False,
)
rtdb_app = typer.Typer(help="Realtime Database operations", no_args_is_help=True)
firestore_app = typer.Typer(help="Firestore operations", no_args_is_help=True)
messaging_app = typer.Typer(help="Cloud Messaging operations", no_args_is_help=True)
app.add_typer(rtdb_app, name="rtdb")
app.add_typer(firestore_app, name="firestore")
app.add_typer(messaging_app, name="messaging")


def setup_logging(verbose: int, quiet: bool):
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


def parse_value(value: str) -> Any:
    """
    Parse a JSON value from a string or @file.json.

    Raises:
        typer.Exit: On parse error
    """
    if value.startswith("@"):
        path = Path(value[1:])
        if not path.exists():
            typer.echo(f"Error: Value file not found: {path}", err=True)
            raise typer.Exit(1)
        text = path.read_text()
    else:
        text = value

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON value: {e}", err=True)
        raise typer.Exit(1)


def parse_object(value: str) -> Dict[str, Any]:
    """Parse a JSON object (see parse_value)."""
    result = parse_value(value)
    if not isinstance(result, dict):
        typer.echo(f"Error: Value must be a JSON object, got {type(result).__name__}", err=True)
        raise typer.Exit(1)
    return result


def emit(value: Any) -> None:
    """Print a value as JSON."""
    typer.echo(json.dumps(value, indent=2, default=str, ensure_ascii=False))


def resolve_settings(
    config: Optional[Path],
    project: Optional[str],
    database_url: Optional[str],
) -> FirebaseSettings:
    """Merge --config file, flags and environment into FirebaseSettings."""
    try:
        base = load_settings_file(config) if config else FirebaseSettings.from_env()
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    overrides = {
        key: value
        for key, value in {"project_id": project, "database_url": database_url}.items()
        if value is not None
    }
    if not overrides:
        return base
    return base.model_copy(update=overrides)


def run_async(ctx: typer.Context, operation: Callable[[FirebaseSettings], Awaitable[T]]) -> T:
    """Run an adapter coroutine, turning adapter errors into exit code 1."""
    settings: FirebaseSettings = ctx.obj["settings"]
    try:
        return asyncio.run(operation(settings))
    except AdapterError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


async def _realtime(settings: FirebaseSettings) -> RealtimeService:
    service = RealtimeService(settings)
    await service.initialize()
    return service


async def _firestore(settings: FirebaseSettings) -> FirestoreService:
    service = FirestoreService(settings)
    await service.initialize()
    return service


# =============================================================================
# Realtime Database
# =============================================================================


@rtdb_app.command("get")
def rtdb_get(ctx: typer.Context, path: str = typer.Argument(..., help="Node path")):
    """Read the value at PATH."""

    async def operation(settings):
        return await (await _realtime(settings)).read_once(path)

    emit(run_async(ctx, operation).model_dump())


@rtdb_app.command("children")
def rtdb_children(ctx: typer.Context, path: str = typer.Argument(..., help="Node path")):
    """List the direct children of PATH."""

    async def operation(settings):
        return await (await _realtime(settings)).read_children_once(path)

    emit([node.to_dict() for node in run_async(ctx, operation)])


@rtdb_app.command("set")
def rtdb_set(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Node path"),
    value: str = typer.Argument(..., help="JSON value or @file.json"),
):
    """Overwrite the value at PATH."""
    data = parse_value(value)

    async def operation(settings):
        await (await _realtime(settings)).replace(path, data)

    run_async(ctx, operation)


@rtdb_app.command("push")
def rtdb_push(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Parent path"),
    value: str = typer.Argument(..., help="JSON value or @file.json"),
):
    """Add a child with a generated key under PATH and print the key."""
    data = parse_value(value)

    async def operation(settings):
        return await (await _realtime(settings)).append(path, data)

    typer.echo(run_async(ctx, operation))


@rtdb_app.command("update")
def rtdb_update(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Node path"),
    value: str = typer.Argument(..., help="JSON object or @file.json"),
):
    """Update only the given children of PATH."""
    fields = parse_object(value)

    async def operation(settings):
        await (await _realtime(settings)).merge(path, fields)

    run_async(ctx, operation)


@rtdb_app.command("delete")
def rtdb_delete(ctx: typer.Context, path: str = typer.Argument(..., help="Node path")):
    """Delete PATH and everything below it."""

    async def operation(settings):
        await (await _realtime(settings)).remove(path)

    run_async(ctx, operation)


@rtdb_app.command("watch")
def rtdb_watch(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Node path"),
    limit: int = typer.Option(0, "--limit", "-n", min=0, help="Stop after N events (0 = forever)"),
):
    """Print the value at PATH after every change."""

    async def operation(settings):
        service = await _realtime(settings)
        count = 0
        async with service.subscribe(path) as subscription:
            async for node in subscription:
                emit(node.model_dump())
                count += 1
                if limit and count >= limit:
                    break

    try:
        run_async(ctx, operation)
    except KeyboardInterrupt:
        raise typer.Exit(130)


# =============================================================================
# Firestore
# =============================================================================


@firestore_app.command("get")
def firestore_get(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    document_id: str = typer.Argument(..., help="Document ID"),
    depth: int = typer.Option(0, "--depth", min=0, help="Subcollection levels to include"),
):
    """Read one document."""

    async def operation(settings):
        service = await _firestore(settings)
        if depth:
            return await service.get_document_tree(collection, document_id, depth=depth)
        return await service.get_document(collection, document_id)

    document = run_async(ctx, operation)
    if document is None:
        typer.echo(f"Error: Document not found: {collection}/{document_id}", err=True)
        raise typer.Exit(1)
    emit(document.model_dump(exclude_none=True))


@firestore_app.command("list")
def firestore_list(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    limit: int = typer.Option(0, "--limit", "-n", min=0, help="Maximum documents (0 = all)"),
):
    """List the documents of a collection."""
    query_builder = (lambda query: query.limit(limit)) if limit else None

    async def operation(settings):
        service = await _firestore(settings)
        return await service.get_collection(collection, query_builder=query_builder)

    emit([doc.model_dump(exclude_none=True) for doc in run_async(ctx, operation)])


@firestore_app.command("set")
def firestore_set(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    document_id: str = typer.Argument(..., help="Document ID"),
    value: str = typer.Argument(..., help="JSON object or @file.json"),
):
    """Create or overwrite a document."""
    data = parse_object(value)

    async def operation(settings):
        await (await _firestore(settings)).set(collection, document_id, data)

    run_async(ctx, operation)


@firestore_app.command("add")
def firestore_add(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    value: str = typer.Argument(..., help="JSON object or @file.json"),
):
    """Add a document with a generated ID and print the ID."""
    data = parse_object(value)

    async def operation(settings):
        return await (await _firestore(settings)).add(collection, data)

    typer.echo(run_async(ctx, operation))


@firestore_app.command("update")
def firestore_update(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    document_id: str = typer.Argument(..., help="Document ID"),
    value: str = typer.Argument(..., help="JSON object or @file.json"),
):
    """Update some fields of an existing document."""
    data = parse_object(value)

    async def operation(settings):
        await (await _firestore(settings)).update(collection, document_id, data)

    run_async(ctx, operation)


@firestore_app.command("delete")
def firestore_delete(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection path"),
    document_id: str = typer.Argument(..., help="Document ID"),
):
    """Delete a document (its subcollections are kept)."""

    async def operation(settings):
        await (await _firestore(settings)).delete(collection, document_id)

    run_async(ctx, operation)


# =============================================================================
# Cloud Messaging
# =============================================================================


def _messaging_settings(settings: FirebaseSettings, token: Optional[str]) -> FirebaseSettings:
    if token:
        return settings.model_copy(update={"registration_token": token})
    return settings


@messaging_app.command("subscribe")
def messaging_subscribe(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="Topic name"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="FCM registration token"),
):
    """Subscribe a device to TOPIC."""

    async def operation(settings):
        service = NotificationService(_messaging_settings(settings, token))
        await service.initialize()
        await service.subscribe_to_topic(topic)

    run_async(ctx, operation)


@messaging_app.command("unsubscribe")
def messaging_unsubscribe(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="Topic name"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="FCM registration token"),
):
    """Unsubscribe a device from TOPIC."""

    async def operation(settings):
        service = NotificationService(_messaging_settings(settings, token))
        await service.initialize()
        await service.unsubscribe_from_topic(topic)

    run_async(ctx, operation)


@messaging_app.command("send")
def messaging_send(
    ctx: typer.Context,
    title: Optional[str] = typer.Option(None, "--title", help="Notification title"),
    body: Optional[str] = typer.Option(None, "--body", help="Notification body"),
    data: Optional[str] = typer.Option(None, "--data", help="JSON object or @file.json"),
    topic: Optional[str] = typer.Option(None, "--topic", help="Send to a topic instead of a device"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="FCM registration token"),
):
    """Send a message and print its ID."""
    payload = parse_object(data) if data else None

    async def operation(settings):
        service = NotificationService(_messaging_settings(settings, token))
        await service.initialize()
        return await service.send(title=title, body=body, data=payload, topic=topic)

    typer.echo(run_async(ctx, operation))


# =============================================================================
# Main
# =============================================================================


def version_callback(value: bool):
    """Handle --version flag."""
    if value:
        typer.echo(f"tdev-firebase {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(None, "--version", callback=version_callback, is_eager=True,
                                 help="Show version and exit"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    project: Optional[str] = typer.Option(None, "--project", help="Firebase project ID"),
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Realtime Database URL"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
):
    """Firebase adapters CLI."""
    setup_logging(verbose, quiet)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = resolve_settings(config, project, database_url)


def main():
    """Entry point for the tdev-firebase console script."""
    app()


if __name__ == "__main__":
    main()
