"""
Data interchange functions for templates.

Converts values to and from YAML, JSON and TOML text. Every function here is
designed to be called from a template, where an exception would abort the
whole render, so none of them raise:

- to_yaml / to_json swallow encode errors and return an empty string.
- to_toml returns the encoder's error message as its output.
- from_yaml / from_json return {"Error": message} on a bad document.
- from_yaml_array / from_json_array return [message] on a bad document.
- from_yaml_document returns [{"Error": message}] if any document is bad.

These are not general-purpose parsers. Decoded values are restricted to the
JSON data model: mappings with string keys, lists, strings, numbers, booleans
and null.
"""

import json
import re
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Set, Tuple

import structlog
import tomli_w
import yaml

logger = structlog.get_logger(__name__)

ERROR_KEY = "Error"

# Characters inspected when guessing whether a stream is JSON or YAML
DEFAULT_BUFFER_SIZE = 256

_WHITESPACE = re.compile(r"\s*")

# A document whose aliases expand to more than MAX_EXPANDED_NODES nodes, and
# to more than MAX_ALIAS_RATIO nodes per distinct container, is rejected
MAX_EXPANDED_NODES = 100_000
MAX_ALIAS_RATIO = 10


class Conversion(NamedTuple):
    """Outcome of decoding one document: either a value or an error message."""

    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _DynamicLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as plain strings."""


_DynamicLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _as_text(text: Any) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        return text.decode("utf-8", errors="replace")
    return text if isinstance(text, str) else str(text)


def _key_text(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)


def _normalize(document: Any) -> Any:
    """
    Stringify mapping keys so YAML output matches the JSON data model.

    Containers reached through several aliases are converted once and shared.

    Raises:
        yaml.YAMLError: if an alias refers to a container that encloses it, or
            expanding the aliases would produce an excessively large document
    """
    converted: Dict[int, Tuple[Any, int]] = {}
    active: Set[int] = set()

    def visit(value: Any) -> Tuple[Any, int]:
        if not isinstance(value, (dict, list)):
            return value, 1
        key = id(value)
        if key in converted:
            return converted[key]
        if key in active:
            raise yaml.YAMLError("document contains recursive alias")

        active.add(key)
        if isinstance(value, dict):
            items = [(_key_text(k), visit(v)) for k, v in value.items()]
            result: Any = {k: v for k, (v, _) in items}
            size = 1 + sum(n for _, (_, n) in items)
        else:
            children = [visit(item) for item in value]
            result = [v for v, _ in children]
            size = 1 + sum(n for _, n in children)
        active.discard(key)

        converted[key] = (result, size)
        return converted[key]

    result, size = visit(document)
    if size > MAX_EXPANDED_NODES and size > MAX_ALIAS_RATIO * len(converted):
        raise yaml.YAMLError("document contains excessive aliasing")
    return result


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    return type(value).__name__


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid character {name[0]!r} looking for beginning of value")


def _as_mapping(result: Conversion) -> Conversion:
    if not result.ok:
        return result
    if result.value is None:
        return Conversion({})
    if not isinstance(result.value, dict):
        return Conversion(error=f"cannot unmarshal {_kind(result.value)} into object")
    return result


def _as_sequence(result: Conversion) -> Conversion:
    if not result.ok:
        return result
    if result.value is None:
        return Conversion([])
    if not isinstance(result.value, list):
        return Conversion(error=f"cannot unmarshal {_kind(result.value)} into array")
    return result


def _decode_yaml(text: Any) -> Conversion:
    try:
        return Conversion(_normalize(yaml.load(_as_text(text), Loader=_DynamicLoader)))
    except (yaml.YAMLError, RecursionError) as e:
        return Conversion(error=f"yaml: {e}")


def _decode_json(text: Any) -> Conversion:
    try:
        return Conversion(json.loads(_as_text(text), parse_constant=_reject_constant))
    except (ValueError, RecursionError) as e:
        return Conversion(error=str(e))


def _decode_yaml_stream(text: str) -> Iterator[Conversion]:
    documents = yaml.load_all(text, Loader=_DynamicLoader)
    while True:
        try:
            document = next(documents)
            # Explicitly empty documents, e.g. after a trailing "---"
            if document is None:
                continue
            document = _normalize(document)
        except StopIteration:
            return
        except (yaml.YAMLError, RecursionError) as e:
            yield Conversion(error=f"yaml: {e}")
            return
        yield Conversion(document)


def _decode_json_stream(text: str) -> Iterator[Conversion]:
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    position = 0
    while True:
        position = _WHITESPACE.match(text, position).end()
        if position == len(text):
            return
        try:
            document, position = decoder.raw_decode(text, position)
        except (ValueError, RecursionError) as e:
            yield Conversion(error=str(e))
            return
        yield Conversion(document)


def decode_stream(text: str, buffer_size: int = DEFAULT_BUFFER_SIZE) -> Iterator[Conversion]:
    """
    Decode successive documents from a YAML or JSON stream.

    The first buffer_size characters are inspected: if the first
    non-whitespace character among them is "{" the input is read as a
    sequence of concatenated JSON values, otherwise as a YAML stream.
    Decoding stops after the first error.
    """
    if text[:buffer_size].lstrip().startswith("{"):
        return _decode_json_stream(text)
    return _decode_yaml_stream(text)


class FormatFunctions:
    """Implements the YAML, JSON and TOML conversion functions for templates."""

    @staticmethod
    def to_yaml(value: Any) -> str:
        """
        Marshal a value to YAML.

        Always returns a string: on marshal error the error is swallowed and
        the result is empty. A single trailing newline is removed.
        """
        try:
            data = yaml.safe_dump(value, default_flow_style=False, allow_unicode=True)
        except (yaml.YAMLError, TypeError, RecursionError) as e:
            logger.debug("format_bridge.encode_failed", format="yaml", error=str(e))
            return ""
        # Bare scalars are written with an explicit document end marker
        if data.endswith("\n...\n"):
            data = data[:-len("...\n")]
        return data[:-1] if data.endswith("\n") else data

    @staticmethod
    def to_json(value: Any) -> str:
        """
        Marshal a value to compact JSON.

        Always returns a string: on marshal error (including NaN and infinite
        floats) the error is swallowed and the result is empty.
        """
        try:
            return json.dumps(
                value,
                separators=(",", ":"),
                sort_keys=True,
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError, RecursionError) as e:
            logger.debug("format_bridge.encode_failed", format="json", error=str(e))
            return ""

    @staticmethod
    def to_toml(value: Any) -> str:
        """
        Marshal a mapping to TOML.

        Always returns a string. Unlike to_yaml and to_json, an encode error is
        not swallowed: its message is returned in place of the document.
        """
        if not isinstance(value, Mapping):
            return "toml: top-level values must be mappings"
        try:
            return tomli_w.dumps(value)
        except (TypeError, ValueError, RecursionError) as e:
            return f"toml: {e}"

    @staticmethod
    def from_yaml(text: str) -> Dict[str, Any]:
        """
        Convert a YAML document into a dict.

        On error the returned dict holds only the error message, under the
        "Error" key.
        """
        result = _as_mapping(_decode_yaml(text))
        if not result.ok:
            logger.debug("format_bridge.decode_failed", format="yaml", error=result.error)
            return {ERROR_KEY: result.error}
        return result.value

    @staticmethod
    def from_yaml_array(text: str) -> List[Any]:
        """
        Convert a YAML array into a list.

        On error the returned list holds the error message as its first and
        only item.
        """
        result = _as_sequence(_decode_yaml(text))
        if not result.ok:
            logger.debug("format_bridge.decode_failed", format="yaml", error=result.error)
            return [result.error]
        return result.value

    @staticmethod
    def from_yaml_document(text: str, buffer_size: int = DEFAULT_BUFFER_SIZE) -> List[Dict[str, Any]]:
        """
        Convert a stream of YAML (or JSON) documents into a list of dicts.

        If any document fails to decode, every document read so far is
        discarded and the result is a single dict holding the error message
        under the "Error" key.
        """
        documents: List[Dict[str, Any]] = []
        for result in decode_stream(_as_text(text), buffer_size):
            result = _as_mapping(result)
            if not result.ok:
                logger.debug(
                    "format_bridge.decode_failed",
                    format="stream",
                    document=len(documents) + 1,
                    error=result.error,
                )
                return [{ERROR_KEY: result.error}]
            documents.append(result.value)
        return documents

    @staticmethod
    def from_json(text: str) -> Dict[str, Any]:
        """
        Convert a JSON document into a dict.

        On error the returned dict holds only the error message, under the
        "Error" key.
        """
        result = _as_mapping(_decode_json(text))
        if not result.ok:
            logger.debug("format_bridge.decode_failed", format="json", error=result.error)
            return {ERROR_KEY: result.error}
        return result.value

    @staticmethod
    def from_json_array(text: str) -> List[Any]:
        """
        Convert a JSON array into a list.

        On error the returned list holds the error message as its first and
        only item.
        """
        result = _as_sequence(_decode_json(text))
        if not result.ok:
            logger.debug("format_bridge.decode_failed", format="json", error=result.error)
            return [result.error]
        return result.value
