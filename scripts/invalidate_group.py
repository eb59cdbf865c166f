#!/usr/bin/python3
import click

from bootstrapper.confirm import _continue
from bootstrapper.constants import DEPLOYMENTS_DIR, REPORT_FILENAME
from bootstrapper.options import deployment_name_option, group_id_option
from bootstrapper.report import Report


@click.command()
@deployment_name_option
@group_id_option
def cli(deployment_name, group_id):
    """
    Forgets a group's lookup tables and identity manager in a report so that
    the next deployment run deploys them again. Nothing is changed on-chain.
    """
    filepath = DEPLOYMENTS_DIR / deployment_name / REPORT_FILENAME
    if not filepath.exists():
        raise click.ClickException(f"No report found at {filepath}")
    report = Report.load(filepath)
    print(f"Invalidating group {group_id} in {filepath}")
    _continue()
    report.invalidate_group(group_id)
    report.save(filepath)
    print(f"Successfully invalidated group {group_id}.")
