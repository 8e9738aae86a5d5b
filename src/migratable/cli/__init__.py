"""
migratable CLI - drive a file-backed migratable contract instance.

Commands:
    migratable init       Instantiate a contract in a storage namespace
    migratable register   Subscribe a listener to the migration complete event
    migratable migrate    Designate the successor and enter migrated_out
    migratable broadcast  Build migration complete notifications
    migratable notify     Deliver an inbound migration complete notification
    migratable reply      Report a notification delivery result
    migratable query      Read migration state
"""

from pathlib import Path
from typing import Optional

import click

from migratable.config import get_config
from migratable.logger import configure_logging

from .execute import broadcast, init, migrate, notify, register, reply
from .query import query


@click.group()
@click.version_option(package_name="migratable")
@click.option("--namespace", "-n", help="Storage namespace of the contract instance")
@click.option("--storage-dir", type=click.Path(file_okay=False), help="Base directory for file storage")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML coordinator settings file",
)
@click.pass_context
def main(
    ctx: click.Context,
    namespace: Optional[str],
    storage_dir: Optional[str],
    settings_path: Optional[Path],
):
    """migratable - contract migration coordination."""
    overrides = {"storage_type": "file"}
    if namespace:
        overrides["namespace"] = namespace
    if storage_dir:
        overrides["storage_dir"] = storage_dir
    config = get_config(**overrides)
    configure_logging(config.log_level, config.log_format)

    settings = None
    if settings_path is not None:
        from migratable.loader import CoordinatorSettingsLoader

        settings = CoordinatorSettingsLoader().load(settings_path)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["settings"] = settings


main.add_command(init)
main.add_command(register)
main.add_command(migrate)
main.add_command(broadcast)
main.add_command(notify)
main.add_command(reply)
main.add_command(query)


__all__ = ["main"]
