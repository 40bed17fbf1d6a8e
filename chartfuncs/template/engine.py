"""
Template expression parsing and JSONPath evaluation.

Renders template strings with {{ expression }} actions. An expression is a
pipeline of commands separated by "|"; each command is a function call, a
JSONPath query or a literal. The value of each stage is passed as the last
argument of the next call:

    {{ $.config | toYaml }}
    {{ $.services | filter('name', 'web') | toJson }}

A "-" just inside the delimiters trims surrounding whitespace, as in
{{- $.name -}}.
"""

import inspect
import re
from typing import Any, Callable, Dict, List, Mapping, Match, Optional

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from .errors import FunctionError, RenderError

# Marks "no value piped in" so that a piped None is still passed on
_NO_VALUE = object()


class JSONPathEngine:
    """Evaluates JSONPath expressions with variable substitution."""

    @staticmethod
    def substitute_variables(expression: str, variables: Dict[str, str]) -> str:
        """
        Replace ${var_name} placeholders with actual values.

        Args:
            expression: JSONPath expression with ${...} placeholders
            variables: Dict mapping variable names to values

        Returns:
            Expression with variables substituted
        """
        def replace_var(match: Match[str]) -> str:
            var_name = match.group(1)
            return str(variables.get(var_name, match.group(0)))

        return re.sub(r'\$\{(\w+)\}', replace_var, expression)

    @staticmethod
    def evaluate(expression: str, data: Any, variables: Optional[Dict[str, str]] = None) -> List[Any]:
        """
        Evaluate a JSONPath expression against data.

        Args:
            expression: JSONPath expression
            data: Data to query
            variables: Optional variables for substitution

        Returns:
            List of matching values

        Raises:
            RenderError: if the expression cannot be parsed
        """
        if variables:
            expression = JSONPathEngine.substitute_variables(expression, variables)

        try:
            jsonpath_expr = jsonpath_parse(expression)
        except (JsonPathLexerError, JsonPathParserError) as e:
            raise RenderError(f"bad JSONPath {expression!r}: {e}") from e
        return [match.value for match in jsonpath_expr.find(data)]


class ExpressionParser:
    """Parses template actions and evaluates them against a function table."""

    # Pattern to match {{ expression }} actions, with optional "-" trim markers
    ACTION_PATTERN = re.compile(r'(?:\s*\{\{-\s|\{\{)(.*?)(?:\s-\}\}\s*|\}\})', re.DOTALL)

    # Pattern to match function calls like toYaml(...), filter(...), etc.
    FUNC_PATTERN = re.compile(r'^(\w+)\s*\((.*)\)$', re.DOTALL)

    NAME_PATTERN = re.compile(r'^[A-Za-z_]\w*$')

    # Plain dotted paths such as $.name or $.costs.copay
    SIMPLE_PATH_PATTERN = re.compile(r'^\$(\.\w+)+$')

    # Integers, decimals and exponent forms such as 1e3 or -1.5E-2
    NUMBER_PATTERN = re.compile(r'^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$')

    LITERALS = {"true": True, "false": False, "null": None}

    def __init__(self, jsonpath_engine: JSONPathEngine, functions: Mapping[str, Callable[..., Any]]):
        self.jsonpath = jsonpath_engine
        self.functions = functions

    @staticmethod
    def split_function_args(arg_str: str, separator: str = ',') -> List[str]:
        """
        Split on separator, respecting quoted strings and nested brackets.

        Example: "$.field, 'value, with comma', f(a, b)"
            -> ["$.field", "'value, with comma'", "f(a, b)"]
        """
        args = []
        current_arg: List[str] = []
        in_quote = False
        quote_char = None
        depth = 0

        for char in arg_str:
            if char in ('"', "'") and not in_quote:
                in_quote = True
                quote_char = char
            elif char == quote_char and in_quote:
                in_quote = False
                quote_char = None
            elif not in_quote and char in '([':
                depth += 1
            elif not in_quote and char in ')]':
                depth -= 1
            elif char == separator and not in_quote and depth == 0:
                args.append(''.join(current_arg).strip())
                current_arg = []
                continue
            current_arg.append(char)

        # Add the last argument
        last = ''.join(current_arg).strip()
        if last or args:
            args.append(last)

        return args

    @staticmethod
    def to_text(value: Any) -> str:
        """Render an evaluated value as template output."""
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def call(self, name: str, args: List[Any], piped: Any = _NO_VALUE) -> Any:
        """
        Call a function from the table.

        Errors reported by the function (FunctionError) become RenderErrors.
        Anything else, including FilterPanic, propagates unchanged.
        """
        function = self.functions.get(name)
        if function is None:
            raise RenderError(f'function "{name}" not defined')
        if piped is not _NO_VALUE:
            args = args + [piped]

        try:
            signature = inspect.signature(function)
        except (TypeError, ValueError):
            signature = None
        if signature is not None:
            try:
                signature.bind(*args)
            except TypeError as e:
                raise RenderError(f"wrong number of args for {name}: {e}") from e

        try:
            return function(*args)
        except FunctionError as e:
            raise RenderError(f"error calling {name}: {e}") from e

    def evaluate_operand(
        self,
        expr: str,
        data: Any,
        variables: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Evaluate a single argument.

        Args:
            expr: Operand (e.g., "$.field", "'text'", "42", "true", "toJson($.a)")
            data: Data context
            variables: Optional path variables

        Returns:
            Evaluated value; None for a JSONPath with no match
        """
        expr = expr.strip()

        # Nested function call
        if self.FUNC_PATTERN.match(expr):
            return self.evaluate_command(expr, data, variables)

        # String literal
        if len(expr) >= 2 and expr[0] == expr[-1] and expr[0] in ('"', "'"):
            return expr[1:-1]

        # Numeric literal
        if self.NUMBER_PATTERN.match(expr):
            try:
                return int(expr)
            except ValueError:
                return float(expr)

        if expr in self.LITERALS:
            return self.LITERALS[expr]

        if expr.startswith('$'):
            if expr == '$':
                return data
            if self.SIMPLE_PATH_PATTERN.match(expr):
                value = data
                for part in expr[2:].split('.'):
                    if isinstance(value, dict) and part in value:
                        value = value[part]
                    else:
                        return None
                return value
            results = self.jsonpath.evaluate(expr, data, variables)
            return results[0] if results else None

        # Parameter reference
        if variables and expr in variables:
            return variables[expr]

        # Zero-argument function
        if expr in self.functions:
            return self.call(expr, [])

        # Literal value
        return expr

    def evaluate_command(
        self,
        command: str,
        data: Any,
        variables: Optional[Dict[str, str]] = None,
        piped: Any = _NO_VALUE
    ) -> Any:
        """Evaluate one stage of a pipeline, appending the piped value if any."""
        command = command.strip()

        func_match = self.FUNC_PATTERN.match(command)
        if func_match:
            func_name = func_match.group(1)
            args = [
                self.evaluate_operand(arg, data, variables)
                for arg in self.split_function_args(func_match.group(2))
            ]
            return self.call(func_name, args, piped)

        if self.NAME_PATTERN.match(command) and command in self.functions:
            return self.call(command, [], piped)

        if piped is not _NO_VALUE:
            raise RenderError(f"can't give argument to non-function {command}")
        return self.evaluate_operand(command, data, variables)

    def evaluate_expression(
        self,
        expr: str,
        data: Any,
        variables: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Evaluate a pipeline (content within {{ }}).

        Args:
            expr: Pipeline (e.g., "$.items | filter('name', 'web') | toJson")
            data: Data context
            variables: Optional path variables

        Returns:
            Value of the last stage
        """
        stages = self.split_function_args(expr, '|')
        if not stages or not stages[0]:
            raise RenderError("missing value for command")

        value = self.evaluate_command(stages[0], data, variables)
        for stage in stages[1:]:
            if not stage:
                raise RenderError("missing value for command")
            value = self.evaluate_command(stage, data, variables, piped=value)
        return value

    def evaluate_template_string(
        self,
        template: str,
        data: Any,
        variables: Optional[Dict[str, str]] = None,
        template_name: Optional[str] = None
    ) -> str:
        """
        Evaluate a template string with embedded {{ expressions }}.

        Args:
            template: Template string (e.g., "name: {{ $.name }}")
            data: Data context
            variables: Optional path variables
            template_name: Name used in error messages

        Returns:
            String with all expressions evaluated and substituted

        Raises:
            RenderError: if an expression fails or a function reports an error
        """
        def replace_expr(match: Match[str]) -> str:
            return self.to_text(self.evaluate_expression(match.group(1), data, variables))

        try:
            return self.ACTION_PATTERN.sub(replace_expr, template)
        except RenderError as e:
            if e.template_name is not None or template_name is None:
                raise
            raise RenderError(str(e), template_name) from (e.__cause__ or e)
