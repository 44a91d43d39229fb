import logging

from osdremove import cephconf
from osdremove.ceph_cli import CephCLI
from osdremove.cluster import ClusterState
from osdremove.exceptions import DecommissionError
from osdremove.outcome import RemovalOutcome
from osdremove.parallel import parallel
from osdremove.sequencer import HostLocks, Sequencer
from osdremove.workload import WorkloadManager

log = logging.getLogger(__name__)


def parse_osd_id(identifier):
    """
    Turn a user supplied identifier like ``"3"`` into an OSD id.

    :raises ValueError: if it is not a non-negative integer written in ASCII
                        digits
    """
    text = str(identifier).strip()
    if not (text.isascii() and text.isdigit()):
        raise ValueError("invalid OSD ID: %r" % identifier)
    return int(text)


class BatchRemover(object):
    """
    Removes a list of OSDs, one Sequencer run per OSD. One bad OSD never stops
    the others; only failing to write the ceph config aborts the batch.
    """

    def __init__(self, sequencer, write_config, max_parallel=1,
                 dry_run=False):
        self.sequencer = sequencer
        self.write_config = write_config
        self.max_parallel = max_parallel
        self.dry_run = dry_run

    def remove_osds(self, identifiers):
        """
        :param identifiers: OSD ids as strings, e.g. ``["3", "5"]``
        :returns: one RemovalOutcome per identifier, in input order
        :raises ClusterConfigError: the ceph config could not be written
        """
        if self.dry_run:
            log.info("dry run: not writing the ceph config")
        else:
            # Generate the ceph config for running ceph commands
            self.write_config()

        outcomes = [None] * len(identifiers)
        pending = []
        seen = set()
        for index, identifier in enumerate(identifiers):
            log.info("removing OSD %r", identifier)
            try:
                osd_id = parse_osd_id(identifier)
            except ValueError as e:
                log.error("%s, skipping it", e)
                outcomes[index] = RemovalOutcome.skipped(identifier, e)
                continue
            if osd_id in seen:
                log.warning("osd.%d was requested more than once, skipping "
                            "the duplicate", osd_id)
                outcomes[index] = RemovalOutcome.skipped(
                    identifier, 'duplicate of an earlier request', osd_id)
                continue
            seen.add(osd_id)
            pending.append((index, identifier, osd_id))

        if self.max_parallel > 1 and len(pending) > 1:
            with parallel(size=self.max_parallel) as p:
                for index, identifier, osd_id in pending:
                    p.spawn(self._remove_one, index, identifier, osd_id)
                for index, outcome in p:
                    outcomes[index] = outcome
        else:
            for index, identifier, osd_id in pending:
                outcomes[index] = self._remove_one(index, identifier, osd_id)[1]
        return outcomes

    def _remove_one(self, index, identifier, osd_id):
        try:
            self.sequencer.remove_osd(osd_id)
        except DecommissionError as e:
            log.error("failed to remove osd.%d: %s", osd_id, e)
            return index, RemovalOutcome.failed(identifier, osd_id, e)
        except Exception as e:
            log.exception("unexpected error removing osd.%d", osd_id)
            return index, RemovalOutcome.failed(identifier, osd_id, e)
        return index, RemovalOutcome.succeeded(identifier, osd_id)


def build(conf, dry_run=False):
    """
    Wire a BatchRemover to the real cluster and Kubernetes API from ``conf``.
    """
    ceph = CephCLI.from_config(conf)
    sequencer = Sequencer.from_config(
        conf, ceph, ClusterState(ceph), WorkloadManager.from_environment(),
        host_locks=HostLocks(), dry_run=dry_run)
    return BatchRemover(
        sequencer,
        lambda: cephconf.write_cluster_config(conf),
        max_parallel=conf.max_parallel,
        dry_run=dry_run,
    )


def remove_osds(conf, identifiers, dry_run=False):
    return build(conf, dry_run=dry_run).remove_osds(identifiers)
