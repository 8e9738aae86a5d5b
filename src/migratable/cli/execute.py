"""migratable CLI - Execute commands (init, register, migrate, broadcast, notify, reply)."""

import base64
from typing import Optional, Tuple

import click

from migratable.errors import MigratableError
from migratable.models import (
    BroadcastMsg,
    HumanPeerRef,
    MessageInfo,
    MigrateMsg,
    MigrateTo,
    MigrationCompleteNotification,
    RegisterMsg,
)
from migratable.replies import DeliveryResult

from ._common import ContractCommandError, echo_response, open_contract

_sender_option = click.option(
    "--sender", "-s", required=True, help="Address of the caller"
)


def _decode_data(data: Optional[str], data_base64: Optional[str]) -> Optional[bytes]:
    if data is not None and data_base64 is not None:
        raise click.UsageError("Use only one of --data and --data-base64")
    if data is not None:
        return data.encode("utf-8")
    if data_base64 is not None:
        try:
            return base64.b64decode(data_base64, validate=True)
        except ValueError as e:
            raise click.BadParameter(f"invalid base64: {e}", param_hint="--data-base64")
    return None


@click.command()
@click.option("--address", required=True, help="This contract's address")
@click.option("--code-hash", required=True, help="This contract's code hash")
@click.option("--admin", help="Admin address (defaults to --sender)")
@click.option("--migrated-from", help="Predecessor contract address")
@click.option("--migrated-from-code-hash", default="", help="Predecessor code hash")
@click.option("--migration-secret", default="", help="Hex secret shared with the predecessor")
@_sender_option
@click.pass_context
def init(
    ctx: click.Context,
    address: str,
    code_hash: str,
    admin: Optional[str],
    migrated_from: Optional[str],
    migrated_from_code_hash: str,
    migration_secret: str,
    sender: str,
):
    """Instantiate a contract in RUNNING mode.

    Example:
        migratable -n v2 init --address v2 --code-hash h2 --sender admin \\
            --migrated-from v1 --migrated-from-code-hash h1
    """
    try:
        secret = bytes.fromhex(migration_secret)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--migration-secret")
    predecessor = (
        HumanPeerRef(address=migrated_from, code_hash=migrated_from_code_hash)
        if migrated_from
        else None
    )
    contract = open_contract(ctx, HumanPeerRef(address=address, code_hash=code_hash))
    try:
        response = contract.instantiate(
            MessageInfo(sender=sender),
            admin=admin,
            migrated_from=predecessor,
            migration_secret=secret,
        )
    except MigratableError as e:
        raise ContractCommandError(e) from e
    echo_response(response)


def _execute(ctx: click.Context, sender: str, msg) -> None:
    contract = open_contract(ctx)
    try:
        response = contract.execute(MessageInfo(sender=sender), msg)
    except MigratableError as e:
        raise ContractCommandError(e) from e
    echo_response(response)


@click.command()
@click.argument("address")
@click.argument("code_hash")
@click.option("--reciprocal", is_flag=True, help="Ask the listener to subscribe back")
@_sender_option
@click.pass_context
def register(ctx: click.Context, address: str, code_hash: str, reciprocal: bool, sender: str):
    """Subscribe ADDRESS to this contract's migration complete event."""
    _execute(
        ctx,
        sender,
        RegisterMsg(address=address, code_hash=code_hash, reciprocal_requested=reciprocal),
    )


@click.command()
@click.argument("address")
@click.argument("code_hash")
@click.option("--entropy", required=True, help="Entropy for the migration secret")
@_sender_option
@click.pass_context
def migrate(ctx: click.Context, address: str, code_hash: str, entropy: str, sender: str):
    """Record ADDRESS as this contract's successor (admin only)."""
    _execute(
        ctx,
        sender,
        MigrateMsg(migrate_to=MigrateTo(address=address, code_hash=code_hash, entropy=entropy)),
    )


@click.command()
@click.argument("addresses", nargs=-1)
@click.option("--code-hash", help="Code hash shared by ADDRESSES")
@click.option("--data", help="UTF-8 payload attached to each notification")
@click.option("--data-base64", help="Base64 payload attached to each notification")
@_sender_option
@click.pass_context
def broadcast(
    ctx: click.Context,
    addresses: Tuple[str, ...],
    code_hash: Optional[str],
    data: Optional[str],
    data_base64: Optional[str],
    sender: str,
):
    """Build migration complete notifications.

    Without ADDRESSES every registered subscriber is notified.
    """
    if addresses and code_hash is None:
        raise click.UsageError("--code-hash is required when ADDRESSES are given")
    _execute(
        ctx,
        sender,
        BroadcastMsg(
            addresses=list(addresses) if addresses else None,
            code_hash=code_hash,
            data=_decode_data(data, data_base64),
        ),
    )


@click.command()
@click.argument("new_address")
@click.argument("new_code_hash")
@click.option("--data", help="UTF-8 payload carried by the notification")
@_sender_option
@click.pass_context
def notify(ctx: click.Context, new_address: str, new_code_hash: str, data: Optional[str], sender: str):
    """Deliver a notification that SENDER now lives at NEW_ADDRESS."""
    _execute(
        ctx,
        sender,
        MigrationCompleteNotification(
            to=HumanPeerRef(address=new_address, code_hash=new_code_hash),
            data=data.encode("utf-8") if data is not None else None,
        ),
    )


@click.command()
@click.argument("recipient")
@click.option("--error", help="Delivery error text; omit for a successful delivery")
@click.pass_context
def reply(ctx: click.Context, recipient: str, error: Optional[str]):
    """Report the delivery result of a notification sent to RECIPIENT."""
    if error is not None and not error:
        raise click.BadParameter("must not be empty", param_hint="--error")
    contract = open_contract(ctx)
    try:
        contract.reply(DeliveryResult(recipient=recipient, error=error))
    except MigratableError as e:
        raise ContractCommandError(e) from e
    click.echo(f"Delivery to {recipient} ok")
