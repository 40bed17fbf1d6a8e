"""
Errors raised by template functions and the template evaluator.

Helpers that report problems raise a FunctionError subclass, which the
evaluator turns into a RenderError carrying the template name. FilterPanic is
the exception raised by the non-asserting filter; it is intentionally outside
the FunctionError hierarchy so it aborts rendering instead of being reported.
"""

from typing import Optional


class FunctionError(Exception):
    """Base class for errors reported by a template function."""


class TypeMismatch(FunctionError, TypeError):
    """A value has a shape the function cannot operate on."""


class RequiredValueError(FunctionError, ValueError):
    """A value passed to required() was empty."""


class FilterPanic(RuntimeError):
    """Unrecoverable abort raised by filter() on malformed arguments."""


class RenderError(ValueError):
    """Template evaluation failed."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        self.template_name = template_name
        if template_name:
            message = f"template: {template_name}: {message}"
        super().__init__(message)
