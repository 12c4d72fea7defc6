"""
GitHub Actions workflow commands.

Written straight to stdout, unformatted, because the runner only
recognises them at the start of a line.
"""

import click


class CiAnnotations:
    """Emits ::group:: / ::endgroup:: / ::error lines when enabled."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled

    def start_group(self, title: str) -> None:
        if self.enabled:
            click.echo(f"::group::{title}")

    def end_group(self) -> None:
        if self.enabled:
            click.echo("::endgroup::")

    def error(self, title: str, message: str) -> None:
        if self.enabled:
            # Workflow commands end at the first newline.
            message = message.replace("\n", " ")
            click.echo(f"::error title={title}::{message}")
