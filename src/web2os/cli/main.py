"""CLI entry point for web2os."""

import logging
import os
import runpy
import sys
from importlib import metadata
from pathlib import Path

import click
from dotenv import load_dotenv

from web2os import __version__
from web2os.config.loader import BROWSER_ENV_VAR, CONFIG_ENV_VAR, HEADLESS_ENV_VAR

logger = logging.getLogger(__name__)

BROWSER_CHOICES = ["chromium", "firefox", "webkit", "chrome", "cdp"]


def setup_logging(level: str = "INFO", log_file: str | None = None) -> Path | None:
    """Configure the root logger with console and optional file output."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler
    if not any(getattr(h, "_web2os", False) for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        )
        console_handler._web2os = True
        root_logger.addHandler(console_handler)

    if not log_file:
        return None

    log_file_path = Path(log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(file_handler)
    return log_file_path


@click.group()
@click.version_option(version=__version__, prog_name="web2os")
def cli():
    """web2os: script a browser window and your OS from one Python file."""
    pass


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("--config", type=click.Path(exists=True, dir_okay=False), help="YAML options file")
@click.option("--headless", is_flag=True, help="Hide browser windows")
@click.option("--browser", type=click.Choice(BROWSER_CHOICES), help="Browser to drive")
@click.option("--log-level", type=str, default=None, help="Log level (default: INFO)")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also log to this file")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.argument("script_args", nargs=-1, type=click.UNPROCESSED)
def run(config, headless, browser, log_level, log_file, script, script_args):
    """Run a web2os SCRIPT, forwarding any further arguments to it."""
    load_dotenv()
    setup_logging(log_level or os.environ.get("WEB2OS_LOG_LEVEL", "INFO"), log_file)

    if config:
        os.environ[CONFIG_ENV_VAR] = str(Path(config).resolve())
    if headless:
        os.environ[HEADLESS_ENV_VAR] = "1"
    if browser:
        os.environ[BROWSER_ENV_VAR] = browser

    script_path = Path(script).resolve()
    script_dir = str(script_path.parent)
    saved_argv = sys.argv
    sys.argv = [script, *script_args]
    sys.path.insert(0, script_dir)

    logger.info(f"Running {script_path}")
    try:
        runpy.run_path(str(script_path), run_name="__main__")
    except Exception as e:
        logger.debug("Script failed", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    finally:
        sys.argv = saved_argv
        if script_dir in sys.path:
            sys.path.remove(script_dir)


@cli.command()
@click.option("--cdp-port", type=int, default=None, help="Also check for a CDP endpoint on this port")
def check(cdp_port):
    """Check that a browser is available for web2os scripts."""
    try:
        click.echo(f"Playwright {metadata.version('playwright')} installed")
    except metadata.PackageNotFoundError:
        click.echo("Playwright not installed! Run: pip install playwright", err=True)
        raise SystemExit(1)

    from web2os.browser.manager import find_chrome, is_cdp_available

    chrome_path = find_chrome()
    if chrome_path:
        click.echo(f"Chrome found: {chrome_path}")
    else:
        click.echo("Chrome not found (use 'playwright install chromium' for the bundled browser)")

    if cdp_port is not None:
        if is_cdp_available(cdp_port):
            click.echo(f"Chrome CDP is running on port {cdp_port}")
        else:
            click.echo(f"Chrome CDP is NOT running on port {cdp_port}", err=True)
            click.echo("\nStart Chrome with CDP:")
            click.echo(f'  "{chrome_path or "chrome"}" --remote-debugging-port={cdp_port}')
            raise SystemExit(1)

    click.echo("\nReady for automation!")


if __name__ == "__main__":
    cli()
