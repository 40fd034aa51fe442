"""
Tamper detection for bundled assets.

Each asset named in the manifest is read through an asset store, hashed
with SHA-512 and compared case-insensitively with its expected digest.
One unreadable or tampered asset never stops the others from being checked.
"""

import logging
from typing import Mapping, Optional

from evidence_forensic.core.assets import AssetStore, PackageAssetStore
from evidence_forensic.models import AssetCheckResult, IntegrityCheckResult, IntegrityStatus
from evidence_forensic.utils.audit import AuditLogger
from evidence_forensic.utils.exceptions import EvidenceIOError, IntegrityError, ManifestError
from evidence_forensic.utils.hashing import digests_match, sha512_hex

logger = logging.getLogger(__name__)

# Expected SHA-512 of every bundled asset, in check order
DEFAULT_MANIFEST = {
    "rules/detection_rules.json": (
        "70ce887d40d2de526552e7a32684689c413e78154d4c51c6f3bbd11edc1cb59f"
        "939882e1f8899d7157d2c9252e2f240689c4416409996c738293b0d159c9c666"
    ),
    "rules/currency_rates.json": (
        "1aba09589e13deef64107f577baf7f9c8a9cfa5e8b5b736cbd2a626b7adb5fa5"
        "61d1560ed021f5a43af40d758ce91e2258c9748e8d5de23268f4e889848680a3"
    ),
}


class AssetIntegrityVerifier:
    """Checks every manifest entry against an asset store."""

    def __init__(
        self,
        store: Optional[AssetStore] = None,
        manifest: Optional[Mapping[str, str]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store or PackageAssetStore()
        self.manifest = DEFAULT_MANIFEST if manifest is None else manifest
        self.audit_logger = audit_logger

    def check_asset(self, asset_path: str, expected: str) -> AssetCheckResult:
        """Check a single asset. Never raises."""
        try:
            data = self.store.read(asset_path)
        except EvidenceIOError as e:
            logger.warning(f"Asset {asset_path} missing or unreadable: {e.reason}")
            return AssetCheckResult(
                asset_path=asset_path,
                status=IntegrityStatus.UNREADABLE,
                expected_sha512=expected,
                reason=e.reason,
            )

        actual = sha512_hex(data)
        if digests_match(expected, actual):
            status = IntegrityStatus.OK
        else:
            status = IntegrityStatus.TAMPERED
            logger.error(f"Asset {asset_path} does not match its expected hash")

        return AssetCheckResult(
            asset_path=asset_path,
            status=status,
            expected_sha512=expected,
            actual_sha512=actual,
        )

    def verify(self) -> IntegrityCheckResult:
        """
        Check every asset in manifest order.

        Returns:
            IntegrityCheckResult with one verdict per manifest entry

        Raises:
            ManifestError: If the manifest itself cannot be enumerated
        """
        try:
            entries = list(self.manifest.items())
        except (AttributeError, TypeError) as e:
            raise ManifestError("Manifest is not a mapping of asset path to digest", cause=e)

        result = IntegrityCheckResult()
        for asset_path, expected in entries:
            result.results[str(asset_path)] = self.check_asset(str(asset_path), expected)

        if result.all_ok:
            logger.info(f"All {len(entries)} bundled assets verified")

        if self.audit_logger:
            self.audit_logger.log_integrity_check(result.summary(), result.all_ok)

        return result

    def require_intact(self) -> IntegrityCheckResult:
        """
        Verify every asset and fail on the first one that is not OK.

        Raises:
            IntegrityError: If any asset is tampered or unreadable
            ManifestError: If the manifest itself cannot be enumerated
        """
        result = self.verify()
        for asset_path, check in result.results.items():
            if check.status != IntegrityStatus.OK:
                raise IntegrityError(asset_path, check.expected_sha512, check.actual_sha512)
        if not result.results:
            raise IntegrityError("asset manifest")
        return result
