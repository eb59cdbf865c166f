from pathlib import Path

import click

from bootstrapper.pipeline import STAGE_NAMES
from bootstrapper.types import GROUP_ID

STAGE_CHOICES = click.Choice(STAGE_NAMES)

config_option = click.option(
    "--config",
    "-c",
    help="Path to the deployment config (YAML).",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
)

deployment_name_option = click.option(
    "--deployment-name",
    "-n",
    help="Name of the deployment; its report and cache live in deployments/<name>.",
    type=str,
    required=True,
)

only_option = click.option(
    "--only",
    help="Run only these stages (repeatable). Unselected inputs are read from the report.",
    type=STAGE_CHOICES,
    multiple=True,
)

through_option = click.option(
    "--through",
    help="Run every stage up to and including this one.",
    type=STAGE_CHOICES,
    default=None,
)

verify_option = click.option(
    "--verify",
    help="Publish deployed contracts to the network's explorer.",
    is_flag=True,
)

autosign_option = click.option(
    "--autosign",
    help="Automatically sign transactions.",
    is_flag=True,
)

dry_run_option = click.option(
    "--dry-run",
    help="Print the stages that would run and exit.",
    is_flag=True,
)

group_id_option = click.option(
    "--group-id",
    "-g",
    help="ID of the group",
    type=GROUP_ID,
    required=True,
)
