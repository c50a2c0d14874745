"""Kubernetes metadata lookups for node annotations."""

import logging
from typing import Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .exceptions import ClusterAPIError

logger = logging.getLogger(__name__)


class KubernetesClient:
    """Reads node objects from the Kubernetes API."""

    def __init__(self, kubeconfig: Optional[str] = None, timeout: float = 30.0):
        self.kubeconfig = kubeconfig
        self.timeout = timeout
        self._core_api: Optional[client.CoreV1Api] = None

    def _load_api_client(self) -> client.ApiClient:
        if self.kubeconfig:
            return config.new_client_from_config(config_file=self.kubeconfig)

        try:
            config.load_incluster_config()
            logger.debug("Loaded in-cluster Kubernetes configuration")
        except ConfigException:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig configuration")
        return client.ApiClient()

    @property
    def core_api(self) -> client.CoreV1Api:
        """Lazy-load the CoreV1 API client."""
        if not self._core_api:
            try:
                self._core_api = client.CoreV1Api(self._load_api_client())
            except (ConfigException, OSError) as e:
                raise ClusterAPIError(f"failed to get cluster config: {e}")
        return self._core_api

    def get_node_annotation(self, node_name: str, key: str) -> Optional[str]:
        """Return annotation ``key`` of node ``node_name``, or None when it is not set."""
        core_api = self.core_api
        try:
            node = core_api.read_node(node_name, _request_timeout=self.timeout)
        except ApiException as e:
            raise ClusterAPIError(f"failed to get node {node_name}: {e.status} {e.reason}")
        except urllib3.exceptions.HTTPError as e:
            raise ClusterAPIError(f"failed to get node {node_name}: {e}")

        annotations = node.metadata.annotations or {}
        return annotations.get(key)
