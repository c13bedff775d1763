"""Terminal implementation of :class:`dbman.application.ports.CredentialPrompter`."""

from __future__ import annotations

import rich_click as click


class ClickPrompter:
    """Ask on the controlling terminal via :func:`click.prompt`.

    Secrets are read with hidden input. Empty answers are accepted so an
    operator can deliberately leave a field blank.
    """

    def ask(self, label: str, *, secret: bool = False, default: str | None = None) -> str:
        answer = click.prompt(
            label,
            default="" if default is None else default,
            hide_input=secret,
            show_default=default is not None and not secret,
        )
        return str(answer)
