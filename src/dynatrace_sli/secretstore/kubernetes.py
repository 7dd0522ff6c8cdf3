"""
Kubernetes Secret-based secret store backend.

Reads Opaque secrets from the Keptn namespace and returns their
base64-decoded fields.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from dynatrace_sli.secretstore.base import (
    BaseSecretStore,
    SecretStoreError,
    SecretStoreType,
    register_backend,
)
from dynatrace_sli.timeouts import K8S_API_CONNECT_TIMEOUT_S, K8S_API_READ_TIMEOUT_S

logger = logging.getLogger(__name__)


@register_backend(SecretStoreType.KUBERNETES)
class KubernetesSecretStore(BaseSecretStore):
    """
    Kubernetes secret store backend.

    Requires ``get`` permission on secrets in the configured namespace.
    The API client is created lazily on first lookup so constructing the
    store never touches the cluster.
    """

    def __init__(
        self,
        namespace: str = "keptn",
        kubeconfig: Optional[str] = None,
        core_api: Optional[Any] = None,
    ):
        super().__init__(namespace=namespace)
        self._kubeconfig = kubeconfig
        self._core_api = core_api

    @property
    def core_api(self) -> Any:
        if self._core_api is None:
            if self._kubeconfig:
                config.load_kube_config(config_file=self._kubeconfig)
            else:
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
            self._core_api = client.CoreV1Api()
            logger.debug(f"KubernetesSecretStore initialized for namespace {self.namespace}")
        return self._core_api

    def get_secret(self, name: str) -> Optional[Dict[str, str]]:
        try:
            secret = self.core_api.read_namespaced_secret(
                name=name,
                namespace=self.namespace,
                _request_timeout=(K8S_API_CONNECT_TIMEOUT_S, K8S_API_READ_TIMEOUT_S),
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Secret {self.namespace}/{name} not found")
                return None
            raise SecretStoreError(name, f"K8s API error {e.status} {e.reason}") from e
        except config.ConfigException as e:
            raise SecretStoreError(name, f"could not load kubeconfig: {e}") from e
        except Exception as e:
            # Timeouts and connection errors surface from urllib3
            raise SecretStoreError(name, f"{type(e).__name__}: {e}") from e

        return _decode_data(name, secret.data or {})


def _decode_data(name: str, data: Dict[str, str]) -> Dict[str, str]:
    decoded: Dict[str, str] = {}
    for key, value in data.items():
        try:
            decoded[key] = base64.b64decode(value).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise SecretStoreError(name, f"field '{key}' is not valid base64 text") from e
    return decoded
