import logging
from pathlib import Path
from typing import Optional

import click
import rich
from click.exceptions import Exit
from rich.console import Console
from rich.logging import RichHandler

from .builder import ProcessBuilder
from .compat import tomllib
from .config import load_config
from .errors import ProcessBuilderError
from .launch import wait
from .typecast import TypeCastError

out = rich.get_console()
err = Console(stderr=True)


def _load(config_path: Path, name: str, args: tuple[str, ...]) -> ProcessBuilder:
    try:
        return load_config(config_path).get(name).to_builder(*args)
    except (OSError, tomllib.TOMLDecodeError, TypeCastError) as e:
        err.print(f"{config_path}: {e}")
    except KeyError as e:
        err.print(e.args[0])
    raise Exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log every process launch.")
@click.version_option()
def main(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err, show_path=False)],
    )


@main.command()
@click.argument("config_path", type=Path)
@click.argument("name")
@click.argument("args", nargs=-1)
def show(config_path: Path, name: str, args: tuple[str, ...]) -> None:
    """Print the spawn arguments of a configured process."""
    out.print(_load(config_path, name, args).spawn_args())


@main.command()
@click.argument("config_path", type=Path)
@click.argument("name")
@click.argument("args", nargs=-1)
def run(config_path: Path, name: str, args: tuple[str, ...]) -> None:
    """Run a configured process and exit with its return code."""
    process = _load(config_path, name, args)
    try:
        status = wait(process.spawn())
    except (OSError, ProcessBuilderError) as e:
        err.print(f"{name}: {e}")
        raise Exit(1) from None

    if not status.success:
        err.print(f"{name}: {status}")
    raise Exit(status.returncode if status.returncode >= 0 else 128 - status.returncode)


@main.command()
@click.argument("config_path", type=Path)
@click.argument("name")
@click.argument("args", nargs=-1)
@click.option("--input", "stdin_data", type=str, default=None)
def capture(
    config_path: Path, name: str, args: tuple[str, ...], stdin_data: Optional[str]
) -> None:
    """Run a configured process with captured output."""
    process = _load(config_path, name, args)
    try:
        stdout, stderr, status = process.capture3(stdin_data)
    except (OSError, ProcessBuilderError) as e:
        err.print(f"{name}: {e}")
        raise Exit(1) from None

    click.echo(stdout, nl=False)
    click.echo(stderr, nl=False, err=True)
    raise Exit(0 if status.success else 1)


if __name__ == "__main__":
    main()
