"""Template rendering for system prompts.

Named templates are looked up in the user template directory first, then in
the templates/ directory shipped with the package.
"""

from pathlib import Path
from typing import Any, Protocol

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateError

from promptstack.core.exceptions import TemplateRenderError

BUILTIN_TEMPLATES_DIR = Path(__file__).parent / "templates"


class TemplateEngine(Protocol):
    """Renders prompt templates against a context mapping."""

    def render_named(self, name: str, context: dict[str, Any]) -> str: ...

    def render_inline(self, text: str, context: dict[str, Any]) -> str: ...


class PromptTemplateEngine:
    """Jinja2 implementation of TemplateEngine."""

    def __init__(self, template_dir: str | Path | None = None) -> None:
        """Initialize the engine.

        Args:
            template_dir: Optional directory whose templates shadow the
                built-in ones with the same name
        """
        search_path = []
        if template_dir is not None:
            search_path.append(FileSystemLoader(str(Path(template_dir).expanduser())))
        search_path.append(FileSystemLoader(str(BUILTIN_TEMPLATES_DIR)))

        self._env = Environment(
            loader=ChoiceLoader(search_path),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_named(self, name: str, context: dict[str, Any]) -> str:
        """Render a template file by name.

        Raises:
            TemplateRenderError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(name)
            return template.render(**context)
        except TemplateError as e:
            raise TemplateRenderError(f"Failed to render template: {e}", template=name) from e
        except Exception as e:
            raise TemplateRenderError(f"Template raised an error: {e}", template=name) from e

    def render_inline(self, text: str, context: dict[str, Any]) -> str:
        """Render template source once, without caching it.

        Raises:
            TemplateRenderError: If the text is not a valid template or fails to render
        """
        try:
            return self._env.from_string(text).render(**context)
        except TemplateError as e:
            raise TemplateRenderError(f"Failed to render inline template: {e}") from e
        except Exception as e:
            raise TemplateRenderError(f"Inline template raised an error: {e}") from e
