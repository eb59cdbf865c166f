#!/usr/bin/python3
from pathlib import Path

import click

from bootstrapper.report import normalize_report


@click.command()
@click.option(
    "--report",
    help="Filepath to report file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
def cli(report):
    """Normalize report file"""
    normalize_report(report)
