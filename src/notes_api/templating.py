"""
Template rendering capability.

Two providers share one interface and are chosen once at startup: the cached
provider compiles every page template up front, the reloading provider reads
templates from disk on each render so edits show up without a restart.
"""
from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")


def _environment(template_dir: str, reload: bool) -> Environment:
    return Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(["html"]),
        auto_reload=reload,
        cache_size=0 if reload else 400,
    )


# PUBLIC_INTERFACE
class TemplateProvider(ABC):
    """Render a named page template (file name without '.html') to a string."""

    @abstractmethod
    def render(self, name: str, context: Optional[Mapping[str, Any]] = None) -> str:
        ...


class CachedTemplateProvider(TemplateProvider):
    """
    Compiles all page templates at construction. Fragments (files starting
    with '_', e.g. '_header.html') are only included, never rendered directly.
    """

    def __init__(self, template_dir: str = TEMPLATE_DIR) -> None:
        env = _environment(template_dir, reload=False)
        self._templates: Dict[str, Template] = {}
        for filename in sorted(os.listdir(template_dir)):
            if filename.endswith(".html") and not filename.startswith("_"):
                self._templates[filename[: -len(".html")]] = env.get_template(filename)

    @property
    def names(self) -> list:
        return sorted(self._templates)

    def render(self, name: str, context: Optional[Mapping[str, Any]] = None) -> str:
        try:
            template = self._templates[name]
        except KeyError:
            raise LookupError(f"unknown template: {name}") from None
        return template.render(**(context or {}))


class ReloadingTemplateProvider(TemplateProvider):
    """Re-reads the template (and its includes) from disk on every render."""

    def __init__(self, template_dir: str = TEMPLATE_DIR) -> None:
        self._env = _environment(template_dir, reload=True)

    def render(self, name: str, context: Optional[Mapping[str, Any]] = None) -> str:
        return self._env.get_template(f"{name}.html").render(**(context or {}))


def build_template_provider(development: bool, template_dir: str = TEMPLATE_DIR) -> TemplateProvider:
    if development:
        return ReloadingTemplateProvider(template_dir)
    return CachedTemplateProvider(template_dir)
