"""
Rendering: template mappings, the template engine and render passes.
"""

from contemplate.render.diff import emit_diff, unified_diff
from contemplate.render.engine import TemplateEngine
from contemplate.render.plan import Plan, TemplateDestination, TemplateMapping, TemplateSource
from contemplate.render.renderer import (
    MappingOutcome,
    RenderOptions,
    RenderPass,
    RenderResult,
    RenderState,
)

__all__ = [
    "MappingOutcome",
    "Plan",
    "RenderOptions",
    "RenderPass",
    "RenderResult",
    "RenderState",
    "TemplateDestination",
    "TemplateEngine",
    "TemplateMapping",
    "TemplateSource",
    "emit_diff",
    "unified_diff",
]
