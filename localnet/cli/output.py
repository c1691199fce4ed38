"""
Helpers shared by the CLI commands: JSON output, error reporting and
access to the lifecycle controller.
"""
import functools
import json
import sys
from typing import Any

import click
import structlog
from pydantic import BaseModel, ValidationError

from ..config import LocalnetSettings, log_error
from ..core.exceptions import InvalidSettings, LocalnetError
from ..lifecycle import LifecycleController

logger = structlog.get_logger()


def echo_json(payload: Any) -> None:
    """Print a result as JSON on stdout."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    click.echo(json.dumps(payload, indent=2, sort_keys=False, default=str))


def get_controller() -> LifecycleController:
    """Controller of the running command, built from settings on first use."""
    ctx = click.get_current_context()
    root = ctx.find_root()
    if root.obj is None:
        try:
            settings = LocalnetSettings()
        except ValidationError as e:
            raise InvalidSettings(str(e)) from e
        root.obj = LifecycleController.from_settings(settings)
    return root.obj


def handle_errors(func):
    """Report LocalnetErrors as JSON on stderr and exit non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LocalnetError as e:
            log_error(logger, e, {"command": func.__name__})
            click.echo(json.dumps({"error_message": str(e)}), err=True)
            sys.exit(e.exit_code)
    return wrapper
