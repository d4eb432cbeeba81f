"""Faultgate CLI - Main Entry Point.

Commands:
    levels   - Show the effective handler configuration
    run      - Run a Python script under an installed error handler
"""

import sys
import json
import runpy
import logging
from typing import Optional

import click

from . import __version__, __cli_name__
from .output import dim, error, kv, section, success
from ..bootstrap import start
from ..config import ConfigError, HandlerConfig, format_mask, load_config
from ..policy import MASK_NAMES, PolicyEngine
from ..shutdown import recovery


def mask_options(func):
    """Add one ``--<mask>`` option per handler bit field."""
    for name in reversed(("register", *MASK_NAMES)):
        func = click.option(
            f"--{name}",
            type=str,
            default=None,
            metavar="MASK",
            help=f"{name} mask expression (e.g. ALL, WARNING|NOTICE, ~STRICT, 0x1100)",
        )(func)
    return func


def _load(ctx: click.Context, config_path: Optional[str], env_file: Optional[str], overrides: dict) -> HandlerConfig:
    try:
        return load_config(config_path, env_file=env_file, overrides=overrides)
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        ctx.exit(2)


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Log handler lifecycle events')
@click.pass_context
def cli(ctx, verbose: bool):
    """Tunable error and exception handling for Python processes."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    if verbose:
        logging.getLogger("faultgate").setLevel(logging.DEBUG)


@cli.command('levels')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='YAML or JSON config file')
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file with FAULTGATE_* keys')
@click.option('--json-output', is_flag=True, help='Print as JSON')
@mask_options
@click.pass_context
def levels(ctx, config_path: Optional[str], env_file: Optional[str], json_output: bool, **masks):
    """
    Show the effective bit fields.

    Examples:
      faultgate levels
      faultgate levels --config faultgate.yaml --thrown NONE
    """
    config = _load(ctx, config_path, env_file, masks)

    policy = PolicyEngine()
    policy.set_level(**config.levels())
    effective = policy.levels

    data = {name: format_mask(getattr(effective, name)) for name in MASK_NAMES}
    data["register"] = format_mask(config.register) if config.register is not None else "reporting"
    data["log_file"] = config.log_file or "stderr"

    if json_output:
        click.echo(json.dumps(data, indent=2))
        return

    section("Levels")
    for key, value in data.items():
        kv(key, value)


@cli.command('run', context_settings={'ignore_unknown_options': True, 'allow_interspersed_args': False})
@click.argument('script', type=click.Path(exists=True, dir_okay=False))
@click.argument('script_args', nargs=-1, type=click.UNPROCESSED)
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='YAML or JSON config file')
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file with FAULTGATE_* keys')
@click.option('--log-file', type=str, default=None, help='Fault log destination (stderr, stdout or a path)')
@mask_options
@click.pass_context
def run(ctx, script: str, script_args: tuple, config_path: Optional[str], env_file: Optional[str], log_file: Optional[str], **masks):
    """
    Run SCRIPT as __main__ with an error handler installed.

    Examples:
      faultgate run app.py
      faultgate run --thrown NONE --log-file faults.log app.py --port 8000
    """
    config = _load(ctx, config_path, env_file, {**masks, "log_file": log_file})
    handler = start(config=config)

    if ctx.obj.get('verbose'):
        dim(f"Running {script} with {handler!r}")

    saved_argv = sys.argv
    sys.argv = [script, *script_args]
    exit_code = 0
    try:
        runpy.run_path(script, run_name="__main__")
    except SystemExit as e:
        if e.code is None:
            exit_code = 0
        elif isinstance(e.code, int):
            exit_code = e.code
        else:
            click.echo(str(e.code), err=True)
            exit_code = 1
    except Exception as e:
        handler.handle_exception(e)
        exit_code = 1
    finally:
        sys.argv = saved_argv
        recovery.run()
        handler.unregister()

    if exit_code == 0 and ctx.obj.get('verbose'):
        success(f"{script} finished")
    ctx.exit(exit_code)


def main():
    """Entry point for `faultgate` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
