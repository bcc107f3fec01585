"""
Periodization templates for tb3.

Each template is described by a TemplateDef loaded from bundled YAML and
identified by a member of the closed TemplateId enum.
"""

from .base import (
    LiftSlotDef,
    RepsPerSet,
    SessionDef,
    SessionKind,
    TemplateDef,
    TemplateId,
    VolumeOverride,
    WeekDef,
)
from .registry import TEMPLATE_REGISTRY, all_templates, get_template, templates_for_days

__all__ = [
    "LiftSlotDef",
    "RepsPerSet",
    "SessionDef",
    "SessionKind",
    "TemplateDef",
    "TemplateId",
    "VolumeOverride",
    "WeekDef",
    "TEMPLATE_REGISTRY",
    "all_templates",
    "get_template",
    "templates_for_days",
]
