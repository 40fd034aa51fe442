"""
Collaborator services used by the analyzer.

These are plain lookups with local, offline defaults:
- jurisdiction code for the current installation
- blockchain anchor reference (a stub URI, nothing is published)
- currency conversion to USD from the bundled rate table
- fraud extraction (party, amount, currency) supplied by the operator
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import BaseModel, Field

from evidence_forensic.core.assets import AssetStore, PackageAssetStore
from evidence_forensic.utils.exceptions import EvidenceIOError, ParseError

logger = logging.getLogger(__name__)

CURRENCY_RATES_ASSET = "rules/currency_rates.json"


class JurisdictionProvider(Protocol):
    def current_code(self) -> str:
        ...


class StaticJurisdictionProvider:
    """Returns a configured jurisdiction code."""

    def __init__(self, code: str = "UNKNOWN"):
        self.code = code

    def current_code(self) -> str:
        return self.code


class AnchorService(Protocol):
    def anchor(self, evidence_hash: Optional[str]) -> Optional[str]:
        ...


class StubAnchorService:
    """Builds a deterministic anchor URI for a hash without contacting any chain."""

    SCHEME = "anchor-stub"

    def anchor(self, evidence_hash: Optional[str]) -> Optional[str]:
        if not evidence_hash:
            return None
        return f"{self.SCHEME}://sha512/{evidence_hash}"


class CurrencyConverter:
    """Converts amounts to USD using a base-USD rate table."""

    def __init__(self, rates: Dict[str, float]):
        self.rates = {code.upper(): float(rate) for code, rate in rates.items()}

    @classmethod
    def from_asset(
        cls,
        store: Optional[AssetStore] = None,
        asset_path: str = CURRENCY_RATES_ASSET,
    ) -> "CurrencyConverter":
        """
        Load the bundled rate table.

        Raises:
            EvidenceIOError: If the asset cannot be read
            ParseError: If the table is malformed
        """
        store = store or PackageAssetStore()
        raw = store.read(asset_path)
        try:
            document = json.loads(raw.decode("utf-8"))
            base = document.get("base", "USD")
            rates = document["rates"]
        except (UnicodeDecodeError, json.JSONDecodeError, AttributeError, KeyError) as e:
            raise ParseError("invalid currency rate table", source=asset_path, cause=e)

        if base != "USD" or not isinstance(rates, dict):
            raise ParseError("currency rate table must be a USD-based mapping", source=asset_path)
        return cls(rates)

    def supports(self, currency: str) -> bool:
        return bool(currency) and currency.upper() in self.rates

    def to_usd(self, currency: str, amount: float) -> float:
        """
        Convert ``amount`` of ``currency`` to USD, rounded to cents.

        Raises:
            ValueError: If the currency is not in the rate table
        """
        if not self.supports(currency):
            raise ValueError(f"No USD rate for currency: {currency}")
        return round(amount * self.rates[currency.upper()], 2)


class FraudExtraction(BaseModel):
    """Counterparty and amount found in (or supplied for) a piece of evidence."""

    party_name: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    party_jurisdiction: Optional[str] = None

    @property
    def has_amount(self) -> bool:
        return self.amount is not None


class FraudExtractor(Protocol):
    def extract(self, file_path: Union[str, Path]) -> Optional[FraudExtraction]:
        ...


class ManualFraudExtraction:
    """Operator-supplied finding, returned for whatever file is analyzed."""

    def __init__(
        self,
        party_name: Optional[str],
        amount: Optional[float],
        currency: str = "USD",
        party_jurisdiction: Optional[str] = None,
    ):
        self.finding = FraudExtraction(
            party_name=party_name,
            amount=amount,
            currency=currency.upper(),
            party_jurisdiction=party_jurisdiction,
        )

    def extract(self, file_path: Union[str, Path]) -> Optional[FraudExtraction]:
        return self.finding


def load_default_converter(store: Optional[AssetStore] = None) -> Optional[CurrencyConverter]:
    """Bundled converter, or None (logged) when the rate table is unusable."""
    try:
        return CurrencyConverter.from_asset(store)
    except (EvidenceIOError, ParseError) as e:
        logger.warning(f"Currency conversion unavailable: {e}")
        return None
