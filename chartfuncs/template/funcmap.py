"""
The table of functions made available to templates.

Some functions are late-bound: they need the render context (other templates,
a cluster connection) and only work once the renderer substitutes its own
implementation. The versions in this table are placeholders so that the table
is complete when templates are checked outside of a render.

Known late-bound functions:

    - "include"
    - "tpl"
    - "required"
    - "lookup"
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .filters import filter_items, must_filter
from .functions import FormatFunctions

LATE_BOUND = ("include", "tpl", "required", "lookup")

# Functions that would expose the process environment to templates
UNSAFE = ("env", "expandenv")


def _include(name: str, data: Any) -> str:
    return "not implemented"


def _tpl(text: str, data: Any) -> Any:
    return "not implemented"


def _required(message: str, value: Any) -> Any:
    return "not implemented"


def _lookup(api_version: str, kind: str, namespace: str, name: str) -> Dict[str, Any]:
    return {}


def func_map(
    base: Optional[Mapping[str, Callable[..., Any]]] = None,
    disabled: Iterable[str] = (),
) -> Mapping[str, Callable[..., Any]]:
    """
    Build the function table.

    Args:
        base: Optional table of general-purpose functions to extend
        disabled: Names to remove from the finished table

    Returns:
        Read-only mapping of template function name to callable
    """
    functions: Dict[str, Callable[..., Any]] = dict(base or {})
    for name in UNSAFE:
        functions.pop(name, None)

    functions.update({
        "toToml": FormatFunctions.to_toml,
        "toYaml": FormatFunctions.to_yaml,
        "fromYaml": FormatFunctions.from_yaml,
        "fromYamlArray": FormatFunctions.from_yaml_array,
        "fromYamlDocument": FormatFunctions.from_yaml_document,
        "toJson": FormatFunctions.to_json,
        "fromJson": FormatFunctions.from_json,
        "fromJsonArray": FormatFunctions.from_json_array,
        "filter": filter_items,
        "mustFilter": must_filter,

        "include": _include,
        "tpl": _tpl,
        "required": _required,
        "lookup": _lookup,
    })

    for name in disabled:
        functions.pop(name, None)

    return MappingProxyType(functions)


FUNCTIONS = func_map()
