"""
HTML pages for Dataclip.

Pages are Jinja2 templates with autoescaping on, so every column name and
value from the database is escaped exactly once, here.
"""

from __future__ import annotations

from jinja2 import Environment, PackageLoader, select_autoescape

from ..gateway.handler import GatewayOutcome
from ..gateway.render import ResultWindow

TIMEOUT_MESSAGE = "Sorry, the request took too long. Try a smaller limit."
ERROR_MESSAGE = "Sorry, something went wrong."

_env = Environment(
    loader=PackageLoader("dbaas.dataclip_server.api", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_window(window: ResultWindow) -> str:
    return _env.get_template("dataclip.html").render(window=window)


def render_message(message: str, title: str = "Dataclip") -> str:
    return _env.get_template("refused.html").render(message=message, title=title)


def render_outcome(outcome: GatewayOutcome) -> str:
    """Render a gateway outcome as a complete HTML document."""
    if outcome.rendered and outcome.window is not None:
        return render_window(outcome.window)
    return render_message(outcome.message or ERROR_MESSAGE)
