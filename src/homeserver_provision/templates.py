"""Jinja2 rendering for the files the steps generate."""

from __future__ import annotations

import logging
from typing import Any

import jinja2

logger = logging.getLogger(__name__)

_environment = jinja2.Environment(
    loader=jinja2.PackageLoader("homeserver_provision", "templates"),
    undefined=jinja2.StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


def render_template(name: str, **context: Any) -> str:
    try:
        return _environment.get_template(name).render(**context)
    except jinja2.TemplateError as exc:
        logger.error("Template rendering error in %s: %s", name, exc)
        raise
