"""
Prompt templates shipped with the package.

Templates live in ``templates/<name>.md`` and may contain ``{{key}}``
placeholders, substituted from the prompt arguments.
"""

import logging
from importlib import resources
from typing import Optional

from ..errors import ToolError

logger = logging.getLogger(__name__)


def render(template: str, args: Optional[dict[str, str]] = None) -> str:
    """Replace ``{{key}}`` placeholders with their values."""
    for key, value in (args or {}).items():
        template = template.replace("{{" + key + "}}", value)
    return template


def load_prompt(name: str, args: Optional[dict[str, str]] = None) -> str:
    """Read the ``name`` template and fill in ``args``.

    Raises:
        ToolError: The template does not exist.
    """
    template_file = resources.files(__name__).joinpath("templates").joinpath(f"{name}.md")
    try:
        content = template_file.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError) as e:
        logger.error("Failed to read %s prompt: %s", name, e)
        raise ToolError(f"Failed to read prompt file: {name}.md") from e
    logger.debug("Loaded %s prompt", name)
    return render(content, args)


def convert_terraform_to_typescript(output_dir: Optional[str] = None) -> str:
    return load_prompt("convert-terraform-to-typescript", {"outputDir": output_dir or "./pulumi"})


__all__ = ["convert_terraform_to_typescript", "load_prompt", "render"]
