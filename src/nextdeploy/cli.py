import logging

import click
from rich.logging import RichHandler

from . import __version__
from .constants import DEFAULT_CONFIG_FILE, DEFAULT_SECRETS_FILE, LOG_FILE
from .core import Deployer

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=True, show_path=False)],
)


@click.command()
@click.option(
    "--config",
    "config_path",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    envvar="NEXTDEPLOY_CONFIG",
    type=click.Path(dir_okay=False),
    help="Deployment configuration file (JSON or YAML).",
)
@click.option(
    "--secrets",
    "secrets_path",
    default=DEFAULT_SECRETS_FILE,
    show_default=True,
    envvar="NEXTDEPLOY_SECRETS",
    type=click.Path(dir_okay=False),
    help="Secrets file (JSON or YAML). Only validated, never logged.",
)
@click.option(
    "--log-file",
    default=LOG_FILE,
    show_default=True,
    envvar="NEXTDEPLOY_LOG_FILE",
    type=click.Path(dir_okay=False),
    help="Append-only deployment log, rotated to <file>.old at 10 MiB.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    envvar="NEXTDEPLOY_DEBUG",
    help="Log executed commands and their output.",
)
@click.version_option(__version__, prog_name="nextdeploy")
def main(config_path, secrets_path, log_file, verbose):
    """Provision this host and deploy the configured Node.js application under PM2."""
    logger = logging.getLogger("nextdeploy")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    deployer = Deployer(
        config_path=config_path,
        secrets_path=secrets_path,
        log_file=log_file,
        verbose=verbose,
    )
    raise SystemExit(deployer.run())


if __name__ == "__main__":
    main()
