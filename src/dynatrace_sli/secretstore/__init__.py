"""
Secret store abstraction for Dynatrace credentials.

Backends:
- Kubernetes (Opaque secrets in the Keptn namespace)
- In-memory (local development, tests)

Example:
    from dynatrace_sli.secretstore import get_secret_store

    store = get_secret_store(namespace="keptn")
    data = store.get_secret("dynatrace")
"""

from dynatrace_sli.secretstore.base import (
    BaseSecretStore,
    InMemorySecretStore,
    SecretStore,
    SecretStoreError,
    SecretStoreType,
    get_secret_store,
)
from dynatrace_sli.secretstore.kubernetes import KubernetesSecretStore

__all__ = [
    "BaseSecretStore",
    "InMemorySecretStore",
    "KubernetesSecretStore",
    "SecretStore",
    "SecretStoreError",
    "SecretStoreType",
    "get_secret_store",
]
