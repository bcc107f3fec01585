"""
Template registry.

All supported templates are registered here.  Use get_template() to look
up a TemplateDef by its id.

Templates are loaded from per-template YAML files in the bundled
``src/tb3/templates/`` directory at import time.  If any TemplateId has
no valid definition, a RuntimeError is raised: the planner cannot run
with a partial template set.

User overrides: place matching files in ``$TB3_HOME/templates/``.
"""

from .base import TemplateDef, TemplateId


def _build_registry() -> dict[TemplateId, TemplateDef]:
    from .loader import load_templates_from_yaml

    loaded = load_templates_from_yaml()
    missing = [t.value for t in TemplateId if t not in loaded]
    if missing:
        raise RuntimeError(
            f"tb3: no valid template definition for {missing}. "
            "Check that src/tb3/templates/*.yaml files are present and valid."
        )
    return {t: loaded[t] for t in TemplateId}


TEMPLATE_REGISTRY: dict[TemplateId, TemplateDef] = _build_registry()


def get_template(template_id: "str | TemplateId") -> TemplateDef:
    """
    Return the TemplateDef for the given id.

    Args:
        template_id: A TemplateId or its string value, e.g. "operator"

    Returns:
        TemplateDef for the requested template

    Raises:
        UnknownTemplateError: If template_id is not a known template
    """
    return TEMPLATE_REGISTRY[TemplateId.parse(template_id)]


def all_templates() -> list[TemplateDef]:
    return list(TEMPLATE_REGISTRY.values())


def templates_for_days(days: int) -> list[TemplateDef]:
    """Templates recommended for a number of training days per week (all if none match)."""
    matches = [t for t in TEMPLATE_REGISTRY.values() if days in t.recommended_days]
    return matches or all_templates()
