"""
Detection rule lexicon.

Provides the built-in fallback pattern lists and the rule sources that
load a replacement lexicon from a JSON/YAML document or a bundled asset.
A rule document is a mapping of up to six category names to arrays of
strings; a category that is missing, not a list, or empty keeps its
fallback list.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Union

import yaml

from evidence_forensic.models import RULE_CATEGORIES, DetectionRuleSet
from evidence_forensic.utils.exceptions import EvidenceIOError, ParseError, RuleLoadFailure

logger = logging.getLogger(__name__)

BUNDLED_RULES_ASSET = "rules/detection_rules.json"

FALLBACK_PATTERNS: Dict[str, tuple] = {
    "keywords": (
        "admit", "deny", "forged", "access", "delete", "refuse", "invoice", "profit",
        "unauthorized", "breach", "hack", "seizure", "shareholder", "oppression",
        "contract", "cash",
    ),
    "entities": (
        "RAKEZ", "SAPS", "Article 84", "Greensky", "UAE", "EU", "South Africa",
    ),
    "evasion": (
        "i don't recall", "can't remember", "not sure", "later", "stop asking",
        "leave me alone",
    ),
    "contradictions": (
        "never happened", "i never said", "you forged", "fake", "that is not true",
        "i paid", "no deal", "we had a deal",
    ),
    "concealment": (
        "delete this", "use my other phone", "no email", "don't write",
        "keep it off the record", "use cash",
    ),
    "financial": (
        "invoice", "wire", "transfer", "swift", "bank", "cash", "under the table",
        "kickback",
    ),
}

FALLBACK_RULES = DetectionRuleSet(source="builtin", **FALLBACK_PATTERNS)


class RuleSource(Protocol):
    """Anything that can produce a raw rule document."""

    name: str

    def load(self) -> Any:
        """Return the parsed document. Raise RuleLoadFailure on failure."""
        ...


def _decode_document(text: str, suffix: str, source: str) -> Any:
    try:
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError, RecursionError) as e:
        raise RuleLoadFailure(source, "Rule document is not valid JSON/YAML", cause=e)


class FileRuleSource:
    """Rule document stored as a JSON or YAML file on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = str(self.path)

    def load(self) -> Any:
        suffix = self.path.suffix.lower()
        if suffix not in (".json", ".yaml", ".yml"):
            raise RuleLoadFailure(self.name, f"Unsupported format: {suffix}")

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RuleLoadFailure(self.name, "Rule file could not be read", cause=e)

        return _decode_document(text, suffix, self.name)


class AssetRuleSource:
    """Rule document read through an asset store (bundled package data by default)."""

    def __init__(self, store, asset_path: str = BUNDLED_RULES_ASSET):
        self.store = store
        self.asset_path = asset_path
        self.name = f"asset:{asset_path}"

    def load(self) -> Any:
        try:
            raw = self.store.read(self.asset_path)
        except EvidenceIOError as e:
            raise RuleLoadFailure(self.name, e.reason, cause=e)

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RuleLoadFailure(self.name, "Rule asset is not UTF-8", cause=e)

        return _decode_document(text, Path(self.asset_path).suffix.lower(), self.name)


def _clean_patterns(value: Any) -> Optional[tuple]:
    """Return usable patterns, or None when the category should fall back."""
    if not isinstance(value, list):
        return None
    patterns = tuple(
        item for item in value if isinstance(item, str) and item.strip()
    )
    return patterns or None


def parse_rule_document(
    document: Any,
    source: str = "document",
    fallback: DetectionRuleSet = FALLBACK_RULES,
) -> DetectionRuleSet:
    """
    Build a rule set from a raw rule document.

    Args:
        document: Parsed JSON/YAML content
        source: Name recorded on the resulting rule set
        fallback: Lists used for categories the document does not supply

    Returns:
        DetectionRuleSet with every category populated

    Raises:
        ParseError: If the document root is not a mapping
    """
    if not isinstance(document, Mapping):
        raise ParseError("Rule document root must be a mapping", source=source)

    categories = {}
    fell_back = []
    for category in RULE_CATEGORIES:
        patterns = _clean_patterns(document.get(category))
        if patterns is None:
            patterns = fallback.patterns(category)
            fell_back.append(category)
        categories[category] = patterns

    if fell_back:
        logger.info(f"Rule categories using fallback lists: {', '.join(fell_back)}")

    return DetectionRuleSet(source=source, **categories)
