"""Tests for the Kubernetes metadata client."""

from unittest.mock import Mock, patch

import pytest
import urllib3
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from talos_client.exceptions import ClusterAPIError
from talos_client.kube import KubernetesClient
from talos_client.models import SCHEMATIC_ANNOTATION


def _node(annotations):
    node = Mock()
    node.metadata.annotations = annotations
    return node


class TestKubernetesClient:
    """Test KubernetesClient."""

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_reads_annotation_with_in_cluster_config(self, mock_config, mock_client):
        mock_client.CoreV1Api.return_value.read_node.return_value = _node({SCHEMATIC_ANNOTATION: "abc123"})

        kube = KubernetesClient(timeout=12)
        value = kube.get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION)

        assert value == "abc123"
        mock_config.load_incluster_config.assert_called_once()
        mock_config.load_kube_config.assert_not_called()
        mock_client.CoreV1Api.return_value.read_node.assert_called_once_with(
            "talos-worker-1", _request_timeout=12
        )

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_falls_back_to_kubeconfig(self, mock_config, mock_client):
        mock_config.load_incluster_config.side_effect = ConfigException("not in cluster")
        mock_client.CoreV1Api.return_value.read_node.return_value = _node({})

        assert KubernetesClient().get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION) is None
        mock_config.load_kube_config.assert_called_once()

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_explicit_kubeconfig(self, mock_config, mock_client):
        mock_client.CoreV1Api.return_value.read_node.return_value = _node(None)

        kube = KubernetesClient(kubeconfig="/tmp/kubeconfig")
        assert kube.get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION) is None

        mock_config.new_client_from_config.assert_called_once_with(config_file="/tmp/kubeconfig")
        mock_client.CoreV1Api.assert_called_once_with(mock_config.new_client_from_config.return_value)
        mock_config.load_incluster_config.assert_not_called()

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_lazy_loading_core_api(self, mock_config, mock_client):
        mock_client.CoreV1Api.return_value.read_node.return_value = _node({})
        kube = KubernetesClient()

        assert kube._core_api is None
        kube.get_node_annotation("a", SCHEMATIC_ANNOTATION)
        kube.get_node_annotation("b", SCHEMATIC_ANNOTATION)

        assert mock_client.CoreV1Api.call_count == 1

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_missing_config_raises_cluster_error(self, mock_config, mock_client):
        mock_config.load_incluster_config.side_effect = ConfigException("not in cluster")
        mock_config.load_kube_config.side_effect = ConfigException("no kubeconfig")

        with pytest.raises(ClusterAPIError, match="failed to get cluster config"):
            KubernetesClient().get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION)

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_api_error_raises_cluster_error(self, mock_config, mock_client):
        mock_client.CoreV1Api.return_value.read_node.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(ClusterAPIError, match="403 Forbidden"):
            KubernetesClient().get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION)

    @patch("talos_client.kube.client")
    @patch("talos_client.kube.config")
    def test_transport_error_raises_cluster_error(self, mock_config, mock_client):
        mock_client.CoreV1Api.return_value.read_node.side_effect = urllib3.exceptions.MaxRetryError(
            pool=None, url="/api/v1/nodes/talos-worker-1"
        )

        with pytest.raises(ClusterAPIError, match="talos-worker-1"):
            KubernetesClient().get_node_annotation("talos-worker-1", SCHEMATIC_ANNOTATION)
