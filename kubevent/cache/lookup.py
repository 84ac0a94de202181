"""Involved-object lookup against the Kubernetes API.

ObjectLookup is the capability the metadata cache resolves misses through.
DynamicObjectLookup is the production implementation: it maps
``(apiVersion, kind)`` to a served resource via API discovery, so any kind
an event can reference (including custom resources) can be fetched.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import aiohttp
import structlog
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic.exceptions import (  # type: ignore[import-untyped]
    DynamicApiError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)

from kubevent.errors import ObjectLookupError, ObjectNotFoundError

_log = structlog.get_logger(component="cache.lookup")


class ObjectLookup(Protocol):
    """Fetches the full API object an event refers to.

    Implementations raise ObjectNotFoundError when the object does not exist
    and ObjectLookupError (or any other exception) for every other failure.
    """

    async def lookup(self, kind: str, namespace: str, name: str, api_version: str = "") -> dict[str, Any]: ...


class DynamicObjectLookup:
    """ObjectLookup backed by the kubernetes-asyncio dynamic client.

    Discovery is initialised lazily on the first lookup and shared by all
    subsequent calls.
    """

    def __init__(self, api_client: Any) -> None:
        self._api_client = api_client
        self._dynamic: DynamicClient | None = None
        self._init_lock = asyncio.Lock()

    async def _client(self) -> DynamicClient:
        if self._dynamic is None:
            async with self._init_lock:
                if self._dynamic is None:
                    self._dynamic = await DynamicClient(self._api_client)
                    _log.debug("dynamic client discovery initialised")
        return self._dynamic

    async def lookup(self, kind: str, namespace: str, name: str, api_version: str = "") -> dict[str, Any]:
        client = await self._client()

        selector: dict[str, str] = {"kind": kind}
        if api_version:
            selector["api_version"] = api_version
        try:
            resource = await client.resources.get(**selector)
        except ResourceNotFoundError as exc:
            # The kind is no longer served (e.g. CRD removed): nothing to fetch.
            raise ObjectNotFoundError(kind, namespace, name, exc) from exc
        except ResourceNotUniqueError as exc:
            raise ObjectLookupError(kind, namespace, name, exc) from exc

        try:
            if resource.namespaced:
                obj = await client.get(resource, name=name, namespace=namespace)
            else:
                obj = await client.get(resource, name=name)
        except NotFoundError as exc:
            raise ObjectNotFoundError(kind, namespace, name, exc) from exc
        except ApiException as exc:
            if exc.status == 404:
                raise ObjectNotFoundError(kind, namespace, name, exc) from exc
            raise ObjectLookupError(kind, namespace, name, exc) from exc
        except (DynamicApiError, aiohttp.ClientError, TimeoutError) as exc:
            raise ObjectLookupError(kind, namespace, name, exc) from exc

        return obj.to_dict()
