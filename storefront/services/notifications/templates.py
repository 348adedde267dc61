"""
Email template rendering with Jinja2.

Templates ship inside the package under ``storefront/templates/notifications``.
Each email is three files: ``<name>_subject.txt``, ``<name>.html`` and an
optional plain-text ``<name>.txt``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from jinja2 import (
    BaseLoader,
    Environment,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from storefront.core.logging import get_logger

logger = get_logger(__name__)


class TemplateRenderError(Exception):
    """Raised when a notification template is missing or fails to render."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html_body: str
    text_body: Optional[str] = None


def format_currency(value: Any) -> str:
    """Format an amount as ``$1,234.56``."""
    return f"${Decimal(str(value)):,.2f}"


class TemplateEngine:
    """
    Renders notification emails.

    Args:
        loader: Jinja2 loader; defaults to the packaged templates
    """

    def __init__(self, loader: Optional[BaseLoader] = None):
        self.env = Environment(
            loader=loader or PackageLoader("storefront", "templates/notifications"),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = format_currency

    def render_email(self, template_name: str, context: Mapping[str, Any]) -> RenderedEmail:
        """
        Render subject, HTML and text bodies for ``template_name``.

        Raises:
            TemplateRenderError: If a required template is missing or a
                variable is undefined
        """
        try:
            subject = self.env.get_template(f"{template_name}_subject.txt").render(**context)
            html_body = self.env.get_template(f"{template_name}.html").render(**context)
        except TemplateNotFound as e:
            raise TemplateRenderError(
                f"Email template not found: {e.name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        text_body = None
        try:
            text_body = self.env.get_template(f"{template_name}.txt").render(**context)
        except TemplateNotFound:
            logger.debug("Text template not found, using HTML only", template_name=template_name)

        return RenderedEmail(
            subject=" ".join(subject.split()),
            html_body=html_body,
            text_body=text_body,
        )
