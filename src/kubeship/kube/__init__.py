"""Cluster access: resources, manifests, client interface and wait strategies."""

from kubeship.kube.client import DEFAULT_KUBE_VERSION, PrintingResourceClient, ResourceClient, UpdateResult
from kubeship.kube.resource import Resource, parse_resources
from kubeship.kube.wait import WaitStrategy

__all__ = [
    'DEFAULT_KUBE_VERSION',
    'PrintingResourceClient',
    'ResourceClient',
    'UpdateResult',
    'Resource',
    'parse_resources',
    'WaitStrategy',
]
