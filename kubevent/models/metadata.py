"""Involved-object identity and cached metadata."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class ObjectIdentity:
    """Cache key for an involved object."""

    api_version: str
    kind: str
    namespace: str
    name: str
    uid: str = ""


@dataclass(frozen=True)
class OwnerReference:
    """One entry of ``metadata.ownerReferences``."""

    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> OwnerReference:
        return cls(
            api_version=str(obj.get("apiVersion") or ""),
            kind=str(obj.get("kind") or ""),
            name=str(obj.get("name") or ""),
            uid=str(obj.get("uid") or ""),
            controller=obj.get("controller"),
            block_owner_deletion=obj.get("blockOwnerDeletion"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }
        if self.controller is not None:
            out["controller"] = self.controller
        if self.block_owner_deletion is not None:
            out["blockOwnerDeletion"] = self.block_owner_deletion
        return out


@dataclass(frozen=True)
class ObjectMetadata:
    """Descriptive metadata about an involved object.

    Entries are never mutated in place; labels and annotations are exposed
    as read-only mappings so cached values cannot be changed by callers.
    """

    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    annotations: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    owner_references: tuple[OwnerReference, ...] = ()
    deleted: bool = False

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> ObjectMetadata:
        """Extract metadata from a full API object dict."""
        metadata = obj.get("metadata") or {}
        return cls(
            labels=MappingProxyType(dict(metadata.get("labels") or {})),
            annotations=MappingProxyType(dict(metadata.get("annotations") or {})),
            owner_references=tuple(
                OwnerReference.from_dict(ref) for ref in metadata.get("ownerReferences") or []
            ),
        )

    @classmethod
    def not_found(cls) -> ObjectMetadata:
        return cls(deleted=True)
