"""
Base secret store protocol and factory.

Defines the interface that all secret store backends must implement.
A secret is a flat mapping of field name to decoded string value.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Type, runtime_checkable

logger = logging.getLogger(__name__)


class SecretStoreType(str, Enum):
    """Available secret store backend types."""
    KUBERNETES = "kubernetes"
    MEMORY = "memory"


class SecretStoreError(Exception):
    """The secret store could not be queried (other than not-found)."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not read secret '{name}': {reason}")


@runtime_checkable
class SecretStore(Protocol):
    """Protocol defining the secret store interface."""

    namespace: str

    def get_secret(self, name: str) -> Optional[Dict[str, str]]:
        """Return the secret's fields, or None if it does not exist."""
        ...


class BaseSecretStore(ABC):
    """
    Abstract base class for secret store backends.

    Provides common functionality and default implementations.
    """

    def __init__(self, namespace: str = "keptn"):
        self.namespace = namespace

    @abstractmethod
    def get_secret(self, name: str) -> Optional[Dict[str, str]]:
        """
        Fetch a secret by name.

        Returns:
            Field name to decoded value, or None if the secret does not exist

        Raises:
            SecretStoreError: if the store could not be queried
        """
        pass


class InMemorySecretStore(BaseSecretStore):
    """
    Secret store backed by a dictionary.

    Useful for local development and for exercising the credential
    resolver without a cluster.
    """

    def __init__(
        self,
        namespace: str = "keptn",
        secrets: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        super().__init__(namespace=namespace)
        self._secrets: Dict[str, Dict[str, str]] = {
            name: dict(data) for name, data in (secrets or {}).items()
        }
        self.lookups: list[str] = []

    def put_secret(self, name: str, data: Dict[str, str]) -> None:
        self._secrets[name] = dict(data)

    def delete_secret(self, name: str) -> None:
        self._secrets.pop(name, None)

    def get_secret(self, name: str) -> Optional[Dict[str, str]]:
        self.lookups.append(name)
        data = self._secrets.get(name)
        return dict(data) if data is not None else None


# Secret store backend registry
_BACKENDS: Dict[SecretStoreType, Type[BaseSecretStore]] = {
    SecretStoreType.MEMORY: InMemorySecretStore,
}


def register_backend(store_type: SecretStoreType):
    """Decorator to register a secret store backend."""
    def decorator(cls: Type[BaseSecretStore]) -> Type[BaseSecretStore]:
        _BACKENDS[store_type] = cls
        return cls
    return decorator


def get_secret_store(
    store_type: Optional[SecretStoreType] = None,
    namespace: str = "keptn",
    kubeconfig: Optional[str] = None,
    **kwargs: Any,
) -> BaseSecretStore:
    """
    Get a secret store backend instance.

    Auto-detects the backend if not specified: Kubernetes when running
    in-cluster or a kubeconfig is available, in-memory otherwise.

    Args:
        store_type: Explicit backend type to use
        namespace: Namespace holding the secrets
        kubeconfig: Path to a kubeconfig file (Kubernetes backend only)
        **kwargs: Additional backend-specific options
    """
    # Import backends to register them
    from dynatrace_sli.secretstore import kubernetes  # noqa: F401

    if store_type is None:
        store_type = _detect_store_type(kubeconfig)

    if store_type not in _BACKENDS:
        raise ValueError(f"Unknown secret store type: {store_type}")

    if store_type is SecretStoreType.KUBERNETES:
        kwargs["kubeconfig"] = kubeconfig

    backend_class = _BACKENDS[store_type]
    return backend_class(namespace=namespace, **kwargs)


def _detect_store_type(kubeconfig: Optional[str] = None) -> SecretStoreType:
    """Auto-detect the appropriate secret store type."""
    if kubeconfig and os.path.exists(kubeconfig):
        logger.info("Using configured kubeconfig")
        return SecretStoreType.KUBERNETES

    if os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount"):
        logger.info("Detected in-cluster Kubernetes environment")
        return SecretStoreType.KUBERNETES

    if os.environ.get("KUBECONFIG"):
        logger.info("Detected KUBECONFIG environment variable")
        return SecretStoreType.KUBERNETES

    if os.path.exists(os.path.expanduser("~/.kube/config")):
        logger.info("Detected local kubeconfig file")
        return SecretStoreType.KUBERNETES

    logger.warning("No Kubernetes detected, using empty in-memory secret store")
    return SecretStoreType.MEMORY
