"""migratable CLI - Query commands."""

import click

from migratable.models import (
    ContractModeQuery,
    MigratedFromQuery,
    MigratedToQuery,
    SubscribersQuery,
)

from ._common import echo_query


@click.group()
def query():
    """Read migration state."""
    pass


@query.command("migrated-from")
@click.pass_context
def migrated_from_cmd(ctx: click.Context):
    """Contract this instance was migrated from."""
    echo_query(ctx, MigratedFromQuery())


@query.command("migrated-to")
@click.pass_context
def migrated_to_cmd(ctx: click.Context):
    """Contract this instance migrated to."""
    echo_query(ctx, MigratedToQuery())


@query.command("subscribers")
@click.pass_context
def subscribers_cmd(ctx: click.Context):
    """Registered subscribers and remaining slots."""
    echo_query(ctx, SubscribersQuery())


@query.command("mode")
@click.pass_context
def mode_cmd(ctx: click.Context):
    """Current contract mode."""
    echo_query(ctx, ContractModeQuery())
