"""
Tests for notification template rendering.
"""

from decimal import Decimal

import pytest
from jinja2 import DictLoader

from storefront.services.notifications.templates import (
    TemplateEngine,
    TemplateRenderError,
    format_currency,
)


def test_format_currency():
    assert format_currency(Decimal("1234.5")) == "$1,234.50"
    assert format_currency("61.75") == "$61.75"


class TestPackagedTemplates:
    def test_order_confirmation(self):
        rendered = TemplateEngine().render_email(
            "order_confirmation",
            {"order_number": "ORD-20240115-0001", "total": Decimal("61.75"), "app_name": "Shop"},
        )

        assert rendered.subject == "Order ORD-20240115-0001 confirmed"
        assert "$61.75" in rendered.html_body
        assert "ORD-20240115-0001" in rendered.text_body

    def test_refund_confirmation(self):
        rendered = TemplateEngine().render_email(
            "refund_confirmation",
            {"order_number": "ORD-20240115-0001", "amount": Decimal("10"), "app_name": "Shop"},
        )

        assert rendered.subject == "Refund issued for order ORD-20240115-0001"
        assert "$10.00" in rendered.html_body

    def test_missing_variable(self):
        with pytest.raises(TemplateRenderError):
            TemplateEngine().render_email("order_confirmation", {"order_number": "ORD-1"})


class TestCustomLoader:
    def test_html_is_escaped(self):
        engine = TemplateEngine(
            DictLoader({"note_subject.txt": "Note", "note.html": "<p>{{ body }}</p>"})
        )

        rendered = engine.render_email("note", {"body": "<script>"})

        assert rendered.html_body == "<p>&lt;script&gt;</p>"
        assert rendered.text_body is None

    def test_missing_template(self):
        engine = TemplateEngine(DictLoader({}))

        with pytest.raises(TemplateRenderError) as exc_info:
            engine.render_email("nothing", {})

        assert exc_info.value.template_name == "nothing"
