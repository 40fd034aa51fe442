"""Read-only access to bundled rule and reference assets."""

from importlib import resources
from pathlib import Path, PurePosixPath
from typing import Protocol, Union

from evidence_forensic.utils.exceptions import EvidenceIOError

ASSET_PACKAGE = "evidence_forensic.assets"


class AssetStore(Protocol):
    """Anything that can return the bytes of a logical asset path."""

    def read(self, path: str) -> bytes:
        """Raise EvidenceIOError when the asset is missing or unreadable."""
        ...


def _split_asset_path(path: str) -> tuple:
    parts = PurePosixPath(path).parts
    if not parts or PurePosixPath(path).is_absolute() or ".." in parts:
        raise EvidenceIOError(path, "Asset path must be relative and stay inside the store")
    return parts


class PackageAssetStore:
    """Assets shipped as package data under ``evidence_forensic/assets``."""

    def __init__(self, package: str = ASSET_PACKAGE):
        self.package = package

    def read(self, path: str) -> bytes:
        parts = _split_asset_path(path)
        try:
            resource = resources.files(self.package).joinpath(*parts)
            return resource.read_bytes()
        except (OSError, ModuleNotFoundError) as e:
            raise EvidenceIOError(path, "Bundled asset not found or unreadable", cause=e)


class DirectoryAssetStore:
    """Assets stored in a directory on disk."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def read(self, path: str) -> bytes:
        parts = _split_asset_path(path)
        target = self.root.joinpath(*parts)

        try:
            resolved = target.resolve()
            if not resolved.is_relative_to(self.root.resolve()):
                raise EvidenceIOError(path, "Asset path escapes the asset directory")
            return resolved.read_bytes()
        except OSError as e:
            raise EvidenceIOError(path, e.strerror or str(e), cause=e)
