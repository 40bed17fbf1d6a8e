"""
Template rendering from configuration.

Handles loading template sources and evaluating them with the function table,
binding the late-bound functions (include, tpl, required, lookup) to the
render in progress.
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from ..config import ConfigLoader, RenderSettings
from ..template import ExpressionParser, FormatFunctions, JSONPathEngine, func_map
from ..template.errors import RenderError, RequiredValueError

logger = structlog.get_logger(__name__)

# Fetches one object from a cluster: (api_version, kind, namespace, name) -> object
ResourceLookup = Callable[[str, str, str, str], Dict[str, Any]]


class TemplateRenderer:
    """Renders templates using the data interchange function table."""

    def __init__(
        self,
        config_loader: ConfigLoader,
        lookup: Optional[ResourceLookup] = None,
        settings: Optional[RenderSettings] = None
    ):
        self.config_loader = config_loader
        self.lookup = lookup
        self.settings = settings if settings is not None else config_loader.load_settings()
        self.jsonpath = JSONPathEngine()

        functions = dict(func_map(disabled=self.settings.disabled_functions))
        if "fromYamlDocument" in functions:
            buffer_size = self.settings.document_buffer_size

            def from_yaml_document(text: str) -> List[Dict[str, Any]]:
                return FormatFunctions.from_yaml_document(text, buffer_size)

            functions["fromYamlDocument"] = from_yaml_document
        self.functions: Mapping[str, Callable[..., Any]] = MappingProxyType(functions)

    def parser(self, depth: int = 0) -> ExpressionParser:
        """
        Build an expression parser with the late-bound functions attached.

        Args:
            depth: Current include nesting, used to stop runaway recursion

        Returns:
            ExpressionParser over a copy of the function table
        """
        def include(name: str, data: Any) -> str:
            return self._include(name, data, depth)

        def tpl(text: str, data: Any) -> str:
            return self.render_source(str(text), data, "tpl", depth + 1)

        late_bound = {
            "include": include,
            "tpl": tpl,
            "required": self._required,
            "lookup": self._lookup,
        }

        functions = dict(self.functions)
        functions.update({name: fn for name, fn in late_bound.items() if name in functions})
        return ExpressionParser(self.jsonpath, functions)

    def render(self, template_name: str, values: Any) -> str:
        """
        Render a configured template.

        Args:
            template_name: Template file name under templates/
            values: Data the template's JSONPath expressions are evaluated against

        Returns:
            Rendered text

        Raises:
            FileNotFoundError: if the template does not exist
            RenderError: if evaluation fails
        """
        source = self.config_loader.load_template(template_name)
        output = self.render_source(source, values, template_name)
        logger.debug("renderer.rendered", template=template_name, size=len(output))
        return output

    def render_with_values(self, template_name: str, values_name: str) -> str:
        """Render a configured template against a configured values file."""
        return self.render(template_name, self.config_loader.load_values(values_name))

    def render_string(self, text: str, values: Any, template_name: str = "inline") -> str:
        """Render a template given as a string."""
        return self.render_source(text, values, template_name)

    def render_source(self, source: str, values: Any, template_name: str, depth: int = 0) -> str:
        return self.parser(depth).evaluate_template_string(source, values, template_name=template_name)

    def _include(self, name: str, data: Any, depth: int) -> str:
        if depth >= self.settings.max_include_depth:
            logger.warning("renderer.include_depth_exceeded", template=name, depth=depth)
            raise RenderError(f"rendering template has a nested reference name: {name}")
        try:
            source = self.config_loader.load_template(name)
        except FileNotFoundError as e:
            raise RenderError(f'no template "{name}" defined') from e
        return self.render_source(source, data, name, depth + 1)

    @staticmethod
    def _required(message: str, value: Any) -> Any:
        if value is None or (isinstance(value, str) and value == ""):
            raise RequiredValueError(message)
        return value

    def _lookup(self, api_version: str, kind: str, namespace: str, name: str) -> Dict[str, Any]:
        if self.lookup is None:
            return {}
        return self.lookup(api_version, kind, namespace, name) or {}
