from __future__ import annotations

from pathlib import Path

import yaml


class ManifestError(RuntimeError):
    """Raised when a manifest cannot be read or does not declare a name."""


def resource_name_from_yaml(path: str | Path) -> str:
    manifest_path = Path(path)
    try:
        raw_manifest = manifest_path.read_text(encoding="utf-8")
    except OSError as error:
        raise ManifestError(f"Unable to read manifest at {manifest_path}: {error}") from error

    try:
        documents = [document for document in yaml.safe_load_all(raw_manifest) if document is not None]
    except yaml.YAMLError as error:
        raise ManifestError(f"Manifest at {manifest_path} is not valid YAML: {error}") from error

    if not documents:
        raise ManifestError(f"Manifest at {manifest_path} is empty.")

    parsed = documents[0]
    if not isinstance(parsed, dict):
        raise ManifestError(f"Manifest at {manifest_path} must be a YAML mapping.")

    metadata = parsed.get("metadata")
    if not isinstance(metadata, dict):
        raise ManifestError(f"Manifest at {manifest_path} is missing the 'metadata' mapping.")

    name = str(metadata.get("name") or "").strip()
    if not name:
        raise ManifestError(f"Manifest at {manifest_path} does not declare metadata.name.")
    return name
