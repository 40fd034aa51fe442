"""
Evidence Forensic Toolkit - Risk Scoring Module

Deterministic lexicon scoring over text content:
- Six pattern categories counted case-insensitively
- Weighted sum capped at 1.0
- Liability labels derived from per-category thresholds
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from evidence_forensic.analysis.lexicon import FALLBACK_RULES, RuleSource, parse_rule_document
from evidence_forensic.models import (
    GENERAL_RISK,
    RULE_CATEGORIES,
    DetectionRuleSet,
    ScoreDiagnostics,
)

logger = logging.getLogger(__name__)


def count_occurrences(text: str, pattern: str) -> int:
    """
    Count non-overlapping occurrences of ``pattern`` in already-lowercased text.

    Scanning resumes immediately after each match, so "aa" occurs twice in
    "aaaa" and once in "aaa". Empty patterns never match.
    """
    needle = pattern.lower()
    if not needle:
        return 0
    return text.count(needle)


class RiskScorer:
    """
    Scores text against a detection rule set.

    Category weights:
    - keywords: 0.05, entities: 0.04, evasion: 0.08
    - contradictions: 0.10, concealment: 0.12, financial: 0.06

    The rule set is loaded at most once per scorer. A failed load leaves the
    built-in lexicon active for the scorer's lifetime.
    """

    WEIGHTS: Dict[str, float] = {
        "keywords": 0.05,
        "entities": 0.04,
        "evasion": 0.08,
        "contradictions": 0.10,
        "concealment": 0.12,
        "financial": 0.06,
    }

    MAX_SCORE = 1.0

    def __init__(self, rule_set: Optional[DetectionRuleSet] = None):
        """
        Initialize the risk scorer.

        Args:
            rule_set: Preloaded rules. When given, ``ensure_loaded`` is a no-op.
        """
        self._rules = rule_set or FALLBACK_RULES
        self._loaded = rule_set is not None
        self._lock = threading.Lock()
        self.load_error: Optional[str] = None

    @property
    def rules(self) -> DetectionRuleSet:
        return self._rules

    @property
    def loaded(self) -> bool:
        return self._loaded

    def ensure_loaded(self, rule_source: RuleSource) -> DetectionRuleSet:
        """
        Load rules from ``rule_source`` unless a load was already attempted.

        Never raises: any read or parse failure is logged and the fallback
        lexicon stays active. Either way the scorer is marked loaded.
        """
        with self._lock:
            if self._loaded:
                return self._rules

            try:
                document = rule_source.load()
                self._rules = parse_rule_document(document, source=rule_source.name)
                logger.info(f"Detection rules loaded from {rule_source.name}")
            except Exception as e:
                self.load_error = str(e) or type(e).__name__
                logger.warning(f"Using built-in detection rules: {e}")
            finally:
                self._loaded = True

            return self._rules

    def count_category(self, text: str, category: str, rule_set: DetectionRuleSet) -> int:
        """Sum occurrences of every pattern in one category."""
        return sum(count_occurrences(text, pattern) for pattern in rule_set.patterns(category))

    def calculate_score(self, counts: Dict[str, int]) -> float:
        """Weighted sum of category counts, capped at 1.0."""
        score = sum(self.WEIGHTS[category] * counts[category] for category in RULE_CATEGORIES)
        return min(self.MAX_SCORE, score)

    def derive_liabilities(self, counts: Dict[str, int]) -> List[str]:
        """Liability labels in fixed order; "General risk" when none apply."""
        liabilities = []
        if counts["contradictions"] >= 2:
            liabilities.append("Contradictions in statements")
        if counts["concealment"] >= 1:
            liabilities.append("Patterns of concealment")
        if counts["evasion"] >= 2:
            liabilities.append("Evasion/Gaslighting indicators")
        if counts["financial"] >= 2:
            liabilities.append("Financial irregularity signals")
        if counts["keywords"] >= 3 and counts["entities"] >= 1:
            liabilities.append("Legal subject flags present")

        return liabilities or [GENERAL_RISK]

    def failed(self, reason: str) -> ScoreDiagnostics:
        """Diagnostics for a scoring run that could not complete."""
        return ScoreDiagnostics(
            risk_score=0.0,
            liabilities=[f"Rules engine error: {reason}"],
            scoring_failed=True,
            failure_reason=reason,
            rules_source=self._rules.source,
        )

    def analyze(self, text: str, rule_set: Optional[DetectionRuleSet] = None) -> ScoreDiagnostics:
        """
        Score text content.

        Args:
            text: Document text
            rule_set: Rules to use instead of the scorer's loaded rules

        Returns:
            ScoreDiagnostics; ``scoring_failed`` is set instead of raising
        """
        rules = rule_set or self._rules

        try:
            if text is None:
                raise ValueError("no text content")

            lowered = text.lower()
            counts = {
                category: self.count_category(lowered, category, rules)
                for category in RULE_CATEGORIES
            }

            return ScoreDiagnostics(
                risk_score=self.calculate_score(counts),
                liabilities=self.derive_liabilities(counts),
                rules_source=rules.source,
                **counts,
            )
        except Exception as e:
            logger.error(f"Risk scoring failed: {e}")
            return self.failed(str(e))

    def analyze_file(self, file_path: Union[str, Path]) -> ScoreDiagnostics:
        """Read a file as UTF-8 (undecodable bytes replaced) and score it."""
        file_path = Path(file_path)
        try:
            text = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error(f"Cannot read {file_path} for scoring: {e}")
            return self.failed(f"cannot read {file_path.name}: {e.strerror or e}")

        return self.analyze(text)
