"""Template functions and expression evaluation."""

from .engine import JSONPathEngine, ExpressionParser
from .errors import FilterPanic, FunctionError, RenderError, RequiredValueError, TypeMismatch
from .filters import filter_items, must_filter
from .funcmap import FUNCTIONS, LATE_BOUND, func_map
from .functions import FormatFunctions

__all__ = [
    "JSONPathEngine",
    "ExpressionParser",
    "FormatFunctions",
    "func_map",
    "FUNCTIONS",
    "LATE_BOUND",
    "filter_items",
    "must_filter",
    "FunctionError",
    "TypeMismatch",
    "RequiredValueError",
    "FilterPanic",
    "RenderError",
]
