"""
Kubernetes side of an OSD: its Deployment and, for OSDs on PVCs, the
prepare Job and the PersistentVolumeClaim backing it.

Deletions are idempotent: an object that is already gone counts as deleted.
"""
import logging
import os
from contextlib import contextmanager
from typing import Iterator, List, Optional

from kubernetes import client, config
from kubernetes.config import ConfigException
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from osdremove.exceptions import ConfigError, WorkloadError

log = logging.getLogger(__name__)

PVC_LABEL = 'ceph.rook.io/pvc'
PREPARE_APP_LABEL = 'app=rook-ceph-osd-prepare'


class _Deleted(object):
    existed = True


def _cause(e):
    if isinstance(e, ApiException):
        return e.reason or e.status
    # connection level failures, e.g. MaxRetryError
    return "{}: {}".format(type(e).__name__, e)


class WorkloadManager(object):
    def __init__(
        self,
        appsV1_api: 'client.AppsV1Api',
        batchV1_api: 'client.BatchV1Api',
        coreV1_api: 'client.CoreV1Api',
    ):
        self.appsV1_api = appsV1_api
        self.batchV1_api = batchV1_api
        self.coreV1_api = coreV1_api

    @classmethod
    def from_environment(cls) -> 'WorkloadManager':
        # Removal jobs run inside the Rook namespace. For development
        # convenience, also support running outside (reading ~/.kube config)
        try:
            if 'POD_NAMESPACE' in os.environ:
                config.load_incluster_config()
            else:
                log.warning("DEVELOPMENT ONLY: Reading kube config from ~")
                config.load_kube_config()
        except ConfigException as e:
            raise ConfigError(
                "unable to load the kubernetes configuration: {}".format(e))
        return cls(client.AppsV1Api(), client.BatchV1Api(), client.CoreV1Api())

    @contextmanager
    def ignore_404(self, what: str) -> Iterator[_Deleted]:
        result = _Deleted()
        try:
            yield result
        except ApiException as e:
            if e.status == 404:
                # Idempotent, succeed.
                log.info("{} not found".format(what))
                result.existed = False
            else:
                raise

    def delete_workload(self, namespace: str, name: str) -> bool:
        """
        Delete the Deployment ``namespace/name``.

        :returns: True if it was deleted, False if it did not exist
        :raises WorkloadError: on any other API failure
        """
        try:
            with self.ignore_404('deployment {}/{}'.format(namespace, name)) as result:
                self.appsV1_api.delete_namespaced_deployment(
                    name=name, namespace=namespace,
                    propagation_policy='Foreground')
        except (ApiException, HTTPError) as e:
            raise WorkloadError(namespace, name, _cause(e))
        return result.existed

    def deployment_pvc(self, namespace: str, name: str) -> Optional[str]:
        """
        Name of the PVC an OSD Deployment runs on, None when it runs on a raw
        device or the Deployment is gone.
        """
        try:
            deployment = self.appsV1_api.read_namespaced_deployment(
                name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise WorkloadError(namespace, name, _cause(e))
        except HTTPError as e:
            raise WorkloadError(namespace, name, _cause(e))
        labels = deployment.metadata.labels or {}
        return labels.get(PVC_LABEL)

    def delete_prepare_jobs(self, namespace: str, pvc: str) -> List[str]:
        """
        Delete the OSD prepare Job(s) that provisioned ``pvc``.
        """
        selector = '{},{}={}'.format(PREPARE_APP_LABEL, PVC_LABEL, pvc)
        deleted = []
        try:
            jobs = self.batchV1_api.list_namespaced_job(
                namespace=namespace, label_selector=selector)
            for job in jobs.items:
                with self.ignore_404('job {}/{}'.format(namespace, job.metadata.name)) as result:
                    self.batchV1_api.delete_namespaced_job(
                        name=job.metadata.name, namespace=namespace,
                        propagation_policy='Foreground')
                if result.existed:
                    deleted.append(job.metadata.name)
        except (ApiException, HTTPError) as e:
            raise WorkloadError(namespace, selector, _cause(e))
        return deleted

    def delete_pvc(self, namespace: str, pvc: str) -> bool:
        try:
            with self.ignore_404('pvc {}/{}'.format(namespace, pvc)) as result:
                self.coreV1_api.delete_namespaced_persistent_volume_claim(
                    name=pvc, namespace=namespace,
                    propagation_policy='Foreground')
        except (ApiException, HTTPError) as e:
            raise WorkloadError(namespace, pvc, _cause(e))
        return result.existed
