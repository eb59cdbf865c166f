#!/usr/bin/python3
import asyncio

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from bootstrapper.ape_backend import ApeDeployer, check_plugins
from bootstrapper.confirm import _continue
from bootstrapper.constants import DEPLOYMENTS_DIR
from bootstrapper.errors import DeploymentError
from bootstrapper.options import (
    autosign_option,
    config_option,
    deployment_name_option,
    dry_run_option,
    only_option,
    through_option,
    verify_option,
)
from bootstrapper.pipeline import run_deployment


@click.command(cls=ConnectedProviderCommand, name="deploy")
@account_option()
@network_option(required=True)
@config_option
@deployment_name_option
@only_option
@through_option
@verify_option
@autosign_option
@dry_run_option
def cli(network, account, config, deployment_name, only, through, verify, autosign, dry_run):
    """
    Deploys the identity contracts described by a config file, or resumes a
    previous deployment of the same name from its report.

    ape run deploy --network ethereum:sepolia:infura --config groups.yml -n sepolia
    """
    check_plugins(verify=verify)
    deployer = ApeDeployer(account=account, verify=verify, autosign=autosign)
    try:
        asyncio.run(
            run_deployment(
                config_filepath=config,
                deployment_dir=DEPLOYMENTS_DIR / deployment_name,
                deployer=deployer,
                only=only,
                through=through,
                confirm=None if autosign else _continue,
                dry_run=dry_run,
            )
        )
    except DeploymentError as e:
        raise click.ClickException(str(e))
