"""Exception hierarchy for kubevent."""

from __future__ import annotations


class KubeventError(Exception):
    """Base class for all kubevent errors."""


class ConfigError(KubeventError):
    """Raised when a KUBEVENT_* environment variable holds an invalid value."""


class ObjectLookupError(KubeventError):
    """Raised when the involved object of an event cannot be fetched.

    Transient: the metadata cache never stores this outcome, so the next
    call for the same object retries the lookup.
    """

    def __init__(self, kind: str, namespace: str, name: str, cause: Exception | None = None) -> None:
        target = f"{kind}/{namespace}/{name}" if namespace else f"{kind}/{name}"
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"lookup of {target} failed{detail}")
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.cause = cause


class ObjectNotFoundError(ObjectLookupError):
    """The involved object no longer exists (or its kind is not served).

    Terminal: converted into a cached ``deleted=True`` metadata result.
    """

    def __init__(self, kind: str, namespace: str, name: str, cause: Exception | None = None) -> None:
        super().__init__(kind, namespace, name, cause)
        target = f"{kind}/{namespace}/{name}" if namespace else f"{kind}/{name}"
        self.args = (f"{target} not found",)
