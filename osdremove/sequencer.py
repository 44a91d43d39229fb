"""
Removal of a single OSD from a running cluster.

The steps go from cheap and reversible to irreversible:

1. check that the OSD is down (no mutation yet)
2. mark it out
3. delete its Deployment (and the PVC it ran on, if any)
4. purge it from the cluster
5. remove its CRUSH host bucket if nothing else lives there

Any failure in 1, 2 or 4, whatever raised it, stops the removal with the
matching DecommissionError. Failures in 3 and 5 are logged and the removal
carries on, neither can corrupt cluster state.
"""
import logging
from contextlib import contextmanager

import gevent.lock

from osdremove.cluster import OSDState
from osdremove.exceptions import MarkOutFailed, PreconditionFailed, PurgeFailed
from osdremove.outcome import StepKind, StepResult

log = logging.getLogger(__name__)


class HostLocks(object):
    """
    One lock per CRUSH host. Checking that a host is empty and removing it is
    not atomic against the cluster, so only one removal may do it at a time
    for a given host.
    """

    def __init__(self):
        self._guard = gevent.lock.BoundedSemaphore()
        self._locks = dict()

    def get(self, host):
        with self._guard:
            lock = self._locks.get(host)
            if lock is None:
                lock = self._locks[host] = gevent.lock.RLock()
            return lock

    @contextmanager
    def hold(self, host):
        with self.get(host):
            yield


class Sequencer(object):

    def __init__(self, ceph, state, workloads, namespace,
                 deployment_prefix='rook-ceph-osd', cleanup_pvc=True,
                 reclaim_host=True, host_locks=None, dry_run=False):
        self.ceph = ceph
        self.state = state
        self.workloads = workloads
        self.namespace = namespace
        self.deployment_prefix = deployment_prefix
        self.cleanup_pvc = cleanup_pvc
        self.reclaim_host = reclaim_host
        self.host_locks = host_locks or HostLocks()
        self.dry_run = dry_run

    @classmethod
    def from_config(cls, conf, ceph, state, workloads, host_locks=None,
                    dry_run=False):
        return cls(
            ceph, state, workloads, conf.namespace,
            deployment_prefix=conf.deployment_prefix,
            cleanup_pvc=conf.cleanup_pvc,
            reclaim_host=conf.reclaim_host,
            host_locks=host_locks,
            dry_run=dry_run,
        )

    def deployment_name(self, osd_id):
        return '%s-%d' % (self.deployment_prefix, osd_id)

    def remove_osd(self, osd_id):
        """
        Remove ``osd_id`` from the cluster.

        :returns: the StepResult of every step after the liveness check
        :raises PreconditionFailed: the OSD is not known to be down
        :raises MarkOutFailed: the OSD could not be marked out
        :raises PurgeFailed: the OSD is out but could not be purged
        """
        log.info("removing osd.%d", osd_id)
        host = self.locate(osd_id)
        results = []
        for step in (self.mark_out, self.teardown_workload, self.purge,
                     self.reclaim_host_slot):
            result = step(osd_id, host)
            results.append(result)
            self._settle(osd_id, result)
        log.info("completed removal of osd.%d", osd_id)
        return results

    def _settle(self, osd_id, result):
        if result.kind is StepKind.OK:
            return
        elif result.kind is StepKind.ADVISORY:
            log.warning("%s of osd.%d failed, continuing: %s",
                        result.step, osd_id, result.error)
        elif result.kind is StepKind.FATAL:
            if result.error.requires_attention:
                log.error("osd.%d is marked out but was not purged, it "
                          "needs operator attention: %s", osd_id, result.error)
            raise result.error

    def locate(self, osd_id):
        """
        Find the host of ``osd_id`` and make sure it is down.
        """
        try:
            host, osd_state = self.state.locate(osd_id)
        except Exception as e:
            raise PreconditionFailed(
                osd_id, "unable to establish that it is 'down': %s" % e)
        if osd_state is not OSDState.DOWN:
            raise PreconditionFailed(
                osd_id, "it is '%s', it must be 'down' to be removed" %
                osd_state.value)
        log.info("osd.%d is down on host %s", osd_id, host)
        return host

    def mark_out(self, osd_id, host):
        if self.dry_run:
            log.info("dry run: would mark osd.%d out", osd_id)
            return StepResult.ok('mark-out')
        try:
            self.ceph.osd_out(osd_id)
        except Exception as e:
            return StepResult.fatal('mark-out', MarkOutFailed(osd_id, e))
        log.info("marked osd.%d out", osd_id)
        return StepResult.ok('mark-out')

    def teardown_workload(self, osd_id, host):
        name = self.deployment_name(osd_id)
        if self.dry_run:
            log.info("dry run: would delete deployment %s/%s",
                     self.namespace, name)
            return StepResult.ok('teardown')

        errors = []
        pvc = None
        if self.cleanup_pvc:
            try:
                pvc = self.workloads.deployment_pvc(self.namespace, name)
            except Exception as e:
                log.error("unable to look up the pvc of osd.%d: %s", osd_id, e)
                errors.append(e)

        log.info("removing the osd deployment %s", name)
        try:
            if not self.workloads.delete_workload(self.namespace, name):
                log.info("deployment %s was already gone", name)
        except Exception as e:
            log.error("failed to delete deployment for osd.%d: %s", osd_id, e)
            errors.append(e)

        if pvc:
            errors.extend(self._remove_pvc(osd_id, pvc))

        if errors:
            return StepResult.advisory('teardown', errors[0])
        return StepResult.ok('teardown')

    def _remove_pvc(self, osd_id, pvc):
        errors = []
        try:
            for job in self.workloads.delete_prepare_jobs(self.namespace, pvc):
                log.info("deleted prepare job %s of osd.%d", job, osd_id)
        except Exception as e:
            log.error("failed to delete prepare job of osd.%d: %s", osd_id, e)
            errors.append(e)
        try:
            if self.workloads.delete_pvc(self.namespace, pvc):
                log.info("deleted pvc %s of osd.%d", pvc, osd_id)
        except Exception as e:
            log.error("failed to delete pvc of osd.%d: %s", osd_id, e)
            errors.append(e)
        return errors

    def purge(self, osd_id, host):
        if self.dry_run:
            log.info("dry run: would purge osd.%d", osd_id)
            return StepResult.ok('purge')
        try:
            self.ceph.osd_purge(osd_id)
        except Exception as e:
            return StepResult.fatal('purge', PurgeFailed(osd_id, e))
        log.info("purged osd.%d", osd_id)
        return StepResult.ok('purge')

    def reclaim_host_slot(self, osd_id, host):
        if not self.reclaim_host or host is None:
            return StepResult.ok('reclaim-host')
        with self.host_locks.hold(host):
            try:
                children = self.state.host_children(host)
            except Exception as e:
                return StepResult.advisory('reclaim-host', e)
            if children is None:
                log.info("crush host %s is already gone", host)
                return StepResult.ok('reclaim-host')
            remaining = [child for child in children if child != osd_id]
            if remaining:
                log.info("not removing crush host %s, it still holds %s",
                         host, ', '.join(str(c) for c in remaining))
                return StepResult.ok('reclaim-host')
            if self.dry_run:
                log.info("dry run: would remove crush host %s", host)
                return StepResult.ok('reclaim-host')
            try:
                self.ceph.crush_rm(host)
            except Exception as e:
                log.info("unable to remove crush host %s: %s", host, e)
                return StepResult.advisory('reclaim-host', e)
        log.info("removed crush host %s", host)
        return StepResult.ok('reclaim-host')
