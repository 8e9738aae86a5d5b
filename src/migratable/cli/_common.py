"""Shared helpers for CLI commands."""

import json
from typing import Any, Optional

import click

from migratable.contract import MigratableContract
from migratable.errors import MigratableError
from migratable.models import HumanPeerRef, Response


class ContractCommandError(click.ClickException):
    """Reports a taxonomy error as its wire reply."""

    def __init__(self, error: MigratableError):
        self.error = error
        super().__init__(error.message)

    def format_message(self) -> str:
        return self.error.to_json()


def open_contract(ctx: click.Context, contract: Optional[HumanPeerRef] = None) -> MigratableContract:
    try:
        return MigratableContract.from_config(
            contract=contract,
            config=ctx.obj["config"],
            settings=ctx.obj["settings"],
        )
    except MigratableError as e:
        raise ContractCommandError(e) from e


def echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def echo_response(response: Response) -> None:
    echo_json(
        {
            "attributes": response.attributes,
            "messages": [m.to_dict() for m in response.messages],
        }
    )


def echo_query(ctx: click.Context, msg) -> None:
    contract = open_contract(ctx)
    try:
        answer = contract.query(msg)
    except MigratableError as e:
        raise ContractCommandError(e) from e
    echo_json(answer.to_wire())
