"""
Evidence Forensic Toolkit - Analysis Module

Rule-based scoring of evidence text:
- Detection lexicon with per-category fallback
- Weighted risk scoring and liability labels
- Directive synthesis for mesh exchange
"""

from evidence_forensic.analysis.directives import (
    DirectiveSynthesizer,
    NullDirectiveSynthesizer,
    ThresholdDirectiveSynthesizer,
)
from evidence_forensic.analysis.lexicon import (
    FALLBACK_RULES,
    AssetRuleSource,
    FileRuleSource,
    RuleSource,
    parse_rule_document,
)
from evidence_forensic.analysis.risk import RiskScorer, count_occurrences

__all__ = [
    "DirectiveSynthesizer",
    "NullDirectiveSynthesizer",
    "ThresholdDirectiveSynthesizer",
    "FALLBACK_RULES",
    "AssetRuleSource",
    "FileRuleSource",
    "RuleSource",
    "parse_rule_document",
    "RiskScorer",
    "count_occurrences",
]
