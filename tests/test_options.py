import click
import pytest
from click.testing import CliRunner

from bootstrapper.options import group_id_option, only_option


@click.command()
@group_id_option
def show_group(group_id):
    click.echo(f"group {group_id}")


@click.command()
@only_option
def show_stages(only):
    click.echo(",".join(only))


@pytest.mark.parametrize("value, expected", [("0", "group 0"), ("7", "group 7"), (" 3 ", "group 3")])
def test_group_id(value, expected):
    result = CliRunner().invoke(show_group, ["--group-id", value])
    assert result.exit_code == 0
    assert result.output.strip() == expected


@pytest.mark.parametrize(
    "value, message", [("-1", "group ids start at 0"), ("one", "'one' is not a group id")]
)
def test_invalid_group_id(value, message):
    result = CliRunner().invoke(show_group, ["--group-id", value])
    assert result.exit_code == 2
    assert message in result.output


def test_unknown_stage():
    result = CliRunner().invoke(show_stages, ["--only", "verifiers"])
    assert result.exit_code == 2
    assert "lookup-tables" in result.output
