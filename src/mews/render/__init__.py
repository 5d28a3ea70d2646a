"""Rendering — templates, link-resolving helpers, and the page compiler."""

from mews.render.compiler import PageCompiler, PageOutput, involved_ids
from mews.render.context import RenderingContext
from mews.render.templates import TemplateSet

__all__ = [
    "PageCompiler",
    "PageOutput",
    "RenderingContext",
    "TemplateSet",
    "involved_ids",
]
