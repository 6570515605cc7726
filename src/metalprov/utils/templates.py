"""Template rendering and dictionary merging utilities."""

import copy
import logging
from typing import Any, Dict

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError


logger = logging.getLogger(__name__)


class StringTemplateLoader(BaseLoader):
    """Template loader for string templates."""

    def __init__(self, template_string: str):
        self.template_string = template_string

    def get_source(self, environment, template):
        return self.template_string, None, lambda: True


def render_template(template_str: str, **context: Any) -> str:
    """Render a Jinja2 template string with given context."""
    try:
        env = Environment(loader=StringTemplateLoader(template_str), undefined=StrictUndefined)
        template = env.get_template("")
        return template.render(**context)
    except TemplateError as e:
        logger.error(f"Template rendering error: {e}")
        raise


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any], append_lists: bool = False) -> Dict[str, Any]:
    """Deep merge two dictionaries, later values winning on conflicting leaves.

    Neither argument is modified. With ``append_lists`` set, lists found
    under the same key are concatenated instead of replaced.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value, append_lists)
        elif append_lists and key in result and isinstance(result[key], list) and isinstance(value, list):
            result[key] = result[key] + copy.deepcopy(value)
        else:
            result[key] = copy.deepcopy(value)

    return result
