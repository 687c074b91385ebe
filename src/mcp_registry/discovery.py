"""
Normalization of tool-listing responses.

Tool servers answer GET /tools in several shapes. Both the envelope and each
descriptor are matched against an ordered list of (tag, matcher) pairs; the
first matcher that returns a value wins. Envelope matchers return the raw
descriptor list, descriptor matchers return a Tool or None.

Accepted envelopes:  [...] | {"tools": [...]} | {"data": [...]}
Accepted descriptors: {"type": "function", "function": {...}} | flat objects
"""

import logging
from typing import Any, Callable, List, Optional, Tuple

from mcp_registry.models import DEFAULT_DESCRIPTION, Tool

logger = logging.getLogger(__name__)

EnvelopeMatcher = Callable[[Any], Optional[list]]
DescriptorMatcher = Callable[[Any], Optional[Tool]]


def _match_bare_array(body: Any) -> Optional[list]:
    if isinstance(body, list):
        return body
    return None


def _match_keyed_array(key: str) -> EnvelopeMatcher:
    def matcher(body: Any) -> Optional[list]:
        if isinstance(body, dict) and isinstance(body.get(key), list):
            return body[key]
        return None
    return matcher


ENVELOPE_MATCHERS: List[Tuple[str, EnvelopeMatcher]] = [
    ("array", _match_bare_array),
    ("tools", _match_keyed_array("tools")),
    ("data", _match_keyed_array("data")),
]


def _first_present(*values: Any) -> Any:
    """Return the first value that is not None (the ?? chain)."""
    for value in values:
        if value is not None:
            return value
    return None


def _clean_name(name: Any) -> Optional[str]:
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _as_schema(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _match_function_call(descriptor: Any) -> Optional[Tool]:
    if descriptor.get("type") != "function" or not isinstance(descriptor.get("function"), dict):
        return None

    function = descriptor["function"]
    name = _clean_name(function.get("name"))
    if name is None:
        return None

    return Tool(
        name=name,
        description=function.get("description") or DEFAULT_DESCRIPTION,
        enabled=True,
        parameters=_as_schema(function.get("parameters")),
    )


def _match_flat(descriptor: Any) -> Optional[Tool]:
    function = descriptor.get("function")
    if not isinstance(function, dict):
        function = {}

    name = _clean_name(_first_present(descriptor.get("name"), function.get("name")))
    if name is None:
        return None

    description = _first_present(
        descriptor.get("description"),
        descriptor.get("desc"),
        function.get("description"),
    )
    parameters = _first_present(
        descriptor.get("parameters"),
        descriptor.get("schema"),
        descriptor.get("inputSchema"),
        function.get("parameters"),
    )

    return Tool(
        name=name,
        description=description or DEFAULT_DESCRIPTION,
        enabled=True,
        parameters=_as_schema(parameters),
    )


DESCRIPTOR_MATCHERS: List[Tuple[str, DescriptorMatcher]] = [
    ("function_call", _match_function_call),
    ("flat", _match_flat),
]


def extract_descriptors(body: Any) -> Tuple[str, list]:
    """
    Pick the descriptor list out of a response body.

    Returns:
        (tag, descriptors) where tag names the envelope that matched,
        or ("unrecognized", []) when none did
    """
    for tag, matcher in ENVELOPE_MATCHERS:
        descriptors = matcher(body)
        if descriptors is not None:
            return tag, descriptors
    return "unrecognized", []


def normalize_descriptor(descriptor: Any) -> Optional[Tool]:
    """Normalize one descriptor, or return None if no flavor yields a named tool."""
    if not isinstance(descriptor, dict):
        return None

    for _tag, matcher in DESCRIPTOR_MATCHERS:
        tool = matcher(descriptor)
        if tool is not None:
            return tool
    return None


def normalize_tools(body: Any) -> List[Tool]:
    """
    Normalize a tool-listing response body into a canonical tool list.

    Unusable descriptors are skipped, and when two descriptors share a name
    the first one is kept. Every returned tool is enabled.
    """
    envelope, descriptors = extract_descriptors(body)
    if envelope == "unrecognized":
        logger.debug(f"Unrecognized tool listing shape: {type(body).__name__}")

    tools: List[Tool] = []
    seen = set()
    for index, descriptor in enumerate(descriptors):
        tool = normalize_descriptor(descriptor)
        if tool is None:
            logger.warning(f"Skipping tool descriptor {index} with missing or invalid name")
            continue
        if tool.name in seen:
            logger.warning(f"Skipping duplicate tool descriptor '{tool.name}'")
            continue
        seen.add(tool.name)
        tools.append(tool)

    return tools
