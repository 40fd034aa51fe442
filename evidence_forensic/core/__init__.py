"""Core modules for evidence forensic analysis.

This package provides the main forensic analyzer together with asset
integrity verification, the recovery ledger and the mesh packet protocol.
"""

from evidence_forensic.core.analyzer import ForensicAnalyzer, analyze_file
from evidence_forensic.core.assets import AssetStore, DirectoryAssetStore, PackageAssetStore
from evidence_forensic.core.integrity import DEFAULT_MANIFEST, AssetIntegrityVerifier
from evidence_forensic.core.ledger import BUSINESS_TOKENS, EvidenceLedger, is_business_party
from evidence_forensic.core.mesh import DirectiveState, MeshPacketProtocol
from evidence_forensic.core.services import (
    CurrencyConverter,
    FraudExtraction,
    ManualFraudExtraction,
    StaticJurisdictionProvider,
    StubAnchorService,
)

__all__ = [
    # Analyzer
    "ForensicAnalyzer",
    "analyze_file",
    # Assets and integrity
    "AssetStore",
    "DirectoryAssetStore",
    "PackageAssetStore",
    "DEFAULT_MANIFEST",
    "AssetIntegrityVerifier",
    # Ledger
    "BUSINESS_TOKENS",
    "EvidenceLedger",
    "is_business_party",
    # Mesh
    "DirectiveState",
    "MeshPacketProtocol",
    # Services
    "CurrencyConverter",
    "FraudExtraction",
    "ManualFraudExtraction",
    "StaticJurisdictionProvider",
    "StubAnchorService",
]
