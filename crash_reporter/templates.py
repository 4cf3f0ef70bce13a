"""Jinja2 rendering of notification bodies."""

from typing import Any, Dict, Optional

from jinja2 import BaseLoader, Environment, PackageLoader, StrictUndefined


class TemplateRenderer:
    """Renders ``templates/<template_id>`` with a context dict.

    Bodies are plain text, so autoescaping stays off.
    """

    def __init__(self, loader: Optional[BaseLoader] = None):
        self.env = Environment(
            loader=loader or PackageLoader("crash_reporter", "templates"),
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def render(self, template_id: str, context: Dict[str, Any]) -> str:
        return self.env.get_template(template_id).render(**context)
