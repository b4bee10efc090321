"""Reshaping one step's output into the next step's input.

The reshaping is heuristic. It is modelled as a strategy, a callable
``(previous_data, action) -> next_input``, so callers can swap it out. The
default ``extract_useful_data`` applies ``DEFAULT_RULES`` in order. The first
rule that returns something other than None wins. When no rule applies, the
previous data is passed through unchanged.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

ExtractionStrategy = Callable[[Any, str], Any]
ExtractionRule = Callable[[Dict[str, Any], str], Optional[Dict[str, Any]]]

_ID_KEYS = ("id", "_id", "uuid")


def _is_id_key(key: str) -> bool:
    lowered = key.lower()
    return lowered in _ID_KEYS or lowered.endswith("_id") or key.endswith("Id")


def tweet_text_rule(data: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
    if "tweet" in action and isinstance(data.get("text"), str):
        return {"content": data["text"]}
    return None


def search_query_rule(data: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
    if "search" in action and data.get("query") is not None:
        return {"query": data["query"]}
    return None


def get_by_id_rule(data: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
    if "get" in action and data.get("id") is not None:
        return {"id": data["id"]}
    return None


def publish_content_rule(data: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
    if ("publish" in action or "post" in action) and data.get("content") is not None:
        return {"content": data["content"]}
    return None


def first_text_rule(data: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
    """Use the first non-identifier string value as content."""
    for key, value in data.items():
        if isinstance(value, str) and value.strip() and not _is_id_key(key):
            return {"content": value}
    return None


DEFAULT_RULES: List[ExtractionRule] = [
    tweet_text_rule,
    search_query_rule,
    get_by_id_rule,
    publish_content_rule,
    first_text_rule,
]


def identity_strategy(previous_data: Any, action: str) -> Any:
    return previous_data


class RuleBasedExtractor:
    """Extraction strategy built from an ordered list of rules."""

    def __init__(self, rules: Sequence[ExtractionRule] = DEFAULT_RULES):
        self.rules = list(rules)

    def __call__(self, previous_data: Any, action: str) -> Any:
        if not isinstance(previous_data, dict):
            return previous_data

        action_lower = (action or "").lower()
        for rule in self.rules:
            try:
                reshaped = rule(previous_data, action_lower)
            except (TypeError, AttributeError, KeyError) as e:
                logger.debug(f"Extraction rule {rule.__name__} failed: {e}")
                continue
            if reshaped is not None:
                logger.debug(f"Extraction rule {rule.__name__} applied for action '{action}'")
                return reshaped

        return previous_data


extract_useful_data: ExtractionStrategy = RuleBasedExtractor()


def _unwrap_mcp_content(result: Any) -> Any:
    """Join MCP ``{"content": [{"type": "text", "text": ...}]}`` payloads into text."""
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        texts = [
            item.get("text", "")
            for item in result["content"]
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        if texts:
            return "\n".join(texts)
    return result


def parse_result_data(raw_result: Any) -> Any:
    """
    Turn a raw tool result into structured data for the next step.

    Strings are JSON-decoded when possible. Objects with a ``data`` or
    ``summary`` member are narrowed to it. Undecodable text is wrapped as
    ``{"rawData": text}``.
    """
    result = _unwrap_mcp_content(raw_result)

    if isinstance(result, str):
        try:
            result = json.loads(result)
        except json.JSONDecodeError:
            return {"rawData": result}

    if isinstance(result, dict):
        if result.get("data") is not None:
            return result["data"]
        if result.get("summary") is not None:
            return result["summary"]

    return result
