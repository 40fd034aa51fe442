"""
Directive synthesis.

A synthesizer turns scoring diagnostics into a small risk-weight boost and
the tuning flags that are exchanged between installations in mesh packets.
"""

import logging
from typing import Protocol

from evidence_forensic.models import Directive, DirectiveFlags, ScoreDiagnostics

logger = logging.getLogger(__name__)


class DirectiveSynthesizer(Protocol):
    """Contract for directive synthesizers."""

    def synthesize(self, diagnostics: ScoreDiagnostics) -> Directive:
        ...


class NullDirectiveSynthesizer:
    """Returns no flags and no boost."""

    def synthesize(self, diagnostics: ScoreDiagnostics) -> Directive:
        return Directive()


class ThresholdDirectiveSynthesizer:
    """
    Derives directive flags from category counts.

    Each raised flag adds ``BOOST_PER_FLAG`` to the suggested risk boost,
    capped at ``MAX_BOOST``. Failed scoring yields an empty directive.
    """

    BOOST_PER_FLAG = 0.02
    MAX_BOOST = 0.10

    HINTS = {
        "prioritize_contradictions": "Review contradicting statements first",
        "prioritize_concealment": "Concealment language present; preserve all channels",
        "tighten_evasion_threshold": "Repeated evasive answers",
        "reinforce_financial_flags": "Multiple financial indicators; trace payments",
        "min_keywords_entities": "Legal keywords without a named entity",
    }

    def synthesize(self, diagnostics: ScoreDiagnostics) -> Directive:
        if diagnostics.scoring_failed:
            logger.debug("Scoring failed; no directive synthesized")
            return Directive()

        flags = DirectiveFlags(
            prioritize_contradictions=diagnostics.contradictions >= 2,
            prioritize_concealment=diagnostics.concealment >= 1,
            tighten_evasion_threshold=diagnostics.evasion >= 2,
            reinforce_financial_flags=diagnostics.financial >= 2,
            min_keywords_entities=diagnostics.keywords >= 3 and diagnostics.entities == 0,
        )
        raised = flags.raised()
        boost = min(self.MAX_BOOST, round(self.BOOST_PER_FLAG * len(raised), 4))

        return Directive(
            risk_weight_boost=boost,
            flags=flags,
            hints=[self.HINTS[name] for name in raised],
        )
