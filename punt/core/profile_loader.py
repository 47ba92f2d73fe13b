"""Profile loading and validation for YAML-based target profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from punt.core.errors import ProfileLoadError, ProfileValidationError
from punt.core.model import MatchRules, TargetProfile, TransportSpec

_ENDPOINT_IN = 0x80
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, TargetProfile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("punt.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "punt/profiles", xdg_data / "punt/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _check_endpoint(value: int, *, inbound: bool, context: str) -> int:
    if bool(value & _ENDPOINT_IN) != inbound:
        direction = "IN" if inbound else "OUT"
        raise ProfileValidationError(f"{context} 0x{value:02x} is not an {direction} endpoint address")
    return value


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> TargetProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    transport_doc = doc.get("transport", {})
    defaults = TransportSpec()
    transport = TransportSpec(
        interface=int(transport_doc.get("interface", defaults.interface)),
        endpoint_out=_check_endpoint(
            int(transport_doc.get("endpoint_out", defaults.endpoint_out)),
            inbound=False,
            context=f"{doc['id']}.transport.endpoint_out",
        ),
        endpoint_in=_check_endpoint(
            int(transport_doc.get("endpoint_in", defaults.endpoint_in)),
            inbound=True,
            context=f"{doc['id']}.transport.endpoint_in",
        ),
        timeout_ms=int(transport_doc.get("timeout_ms", defaults.timeout_ms)),
    )

    return TargetProfile(
        id=doc["id"],
        name=doc["name"],
        match=MatchRules(
            vendor_id=int(doc["match"]["vendor_id"]),
            product_id=int(doc["match"]["product_id"]),
            manufacturer=doc["match"]["manufacturer"],
            product=doc["match"]["product"],
        ),
        transport=transport,
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("punt.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, TargetProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
