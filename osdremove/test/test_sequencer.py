import logging

import pytest
from unittest.mock import Mock
from urllib3.exceptions import MaxRetryError

from osdremove.ceph_cli import CephCLI
from osdremove.cluster import ClusterState
from osdremove.exceptions import (MarkOutFailed, PreconditionFailed,
                                  PurgeFailed, WorkloadError)
from osdremove.outcome import StepKind
from osdremove.sequencer import HostLocks, Sequencer
from osdremove.workload import WorkloadManager

from osdremove.test.fake_cluster import FakeCeph, make_tree


def make_workloads(calls, pvc=None):
    workloads = Mock(spec=WorkloadManager)
    workloads.deployment_pvc.return_value = pvc

    def delete_workload(namespace, name):
        calls.append(('delete', name))
        return True
    workloads.delete_workload.side_effect = delete_workload
    workloads.delete_prepare_jobs.return_value = []
    workloads.delete_pvc.return_value = True
    return workloads


def make_sequencer(hosts, fail=(), stray=None, pvc=None, **kw):
    calls = []
    ceph = FakeCeph(make_tree(hosts, stray), fail=fail, calls=calls)
    workloads = make_workloads(calls, pvc=pvc)
    sequencer = Sequencer(ceph, ClusterState(ceph), workloads, 'rook-ceph',
                          **kw)
    return sequencer, ceph, workloads


class TestLiveness(object):

    def test_up_osd_is_refused(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'up'}})
        with pytest.raises(PreconditionFailed) as error:
            sequencer.remove_osd(3)
        assert error.value.osd_id == 3
        assert "'up'" in str(error.value)
        assert ceph.mutations == []
        workloads.delete_workload.assert_not_called()

    def test_unknown_osd_is_refused(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        with pytest.raises(PreconditionFailed):
            sequencer.remove_osd(9)
        assert ceph.mutations == []

    def test_tree_query_failure_is_refused(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, fail={'tree'})
        with pytest.raises(PreconditionFailed) as error:
            sequencer.remove_osd(3)
        assert 'unable to establish' in str(error.value)
        assert ceph.mutations == []
        workloads.delete_workload.assert_not_called()

    def test_liveness_is_queried_per_removal(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down', 4: 'down'}})
        sequencer.remove_osd(3)
        sequencer.remove_osd(4)
        assert ceph.calls[0] == ('tree',)
        assert ceph.calls.count(('tree',)) == 4


class TestOrdering(object):

    def test_steps_run_in_order(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        results = sequencer.remove_osd(3)
        assert ceph.mutations == [
            ('out', 3),
            ('delete', 'rook-ceph-osd-3'),
            ('purge', 3),
            ('crush_rm', 'node1'),
        ]
        assert [r.kind for r in results] == [StepKind.OK] * 4

    def test_deployment_is_looked_up_in_namespace(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        sequencer.remove_osd(3)
        workloads.delete_workload.assert_called_once_with(
            'rook-ceph', 'rook-ceph-osd-3')

    def test_deployment_prefix(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, deployment_prefix='osd')
        sequencer.remove_osd(3)
        assert ('delete', 'osd-3') in ceph.mutations


class TestMarkOut(object):

    def test_failure_stops_removal(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, fail={'out'})
        with pytest.raises(MarkOutFailed) as error:
            sequencer.remove_osd(3)
        assert error.value.requires_attention is False
        assert ceph.mutations == [('out', 3)]
        workloads.delete_workload.assert_not_called()


class TestTeardown(object):

    def test_missing_deployment_still_purges(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        workloads.delete_workload.side_effect = None
        workloads.delete_workload.return_value = False
        results = sequencer.remove_osd(3)
        assert ('purge', 3) in ceph.mutations
        assert results[1].kind is StepKind.OK

    def test_delete_error_is_advisory(self, caplog):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        error = WorkloadError('rook-ceph', 'rook-ceph-osd-3', 'Forbidden')
        workloads.delete_workload.side_effect = error
        results = sequencer.remove_osd(3)
        assert results[1].kind is StepKind.ADVISORY
        assert results[1].error is error
        assert ceph.mutations[-2:] == [('purge', 3), ('crush_rm', 'node1')]
        assert 'Forbidden' in caplog.text

    def test_pvc_is_cleaned_up(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, pvc='set1-data-0-abcde')
        workloads.delete_prepare_jobs.return_value = ['prepare-set1-data-0']
        sequencer.remove_osd(3)
        workloads.delete_prepare_jobs.assert_called_once_with(
            'rook-ceph', 'set1-data-0-abcde')
        workloads.delete_pvc.assert_called_once_with(
            'rook-ceph', 'set1-data-0-abcde')

    def test_pvc_cleanup_error_is_advisory(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, pvc='set1-data-0-abcde')
        workloads.delete_pvc.side_effect = WorkloadError(
            'rook-ceph', 'set1-data-0-abcde', 'Forbidden')
        results = sequencer.remove_osd(3)
        assert results[1].kind is StepKind.ADVISORY
        assert ('purge', 3) in ceph.mutations

    def test_keep_pvc(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, pvc='set1-data-0-abcde',
            cleanup_pvc=False)
        sequencer.remove_osd(3)
        workloads.deployment_pvc.assert_not_called()
        workloads.delete_pvc.assert_not_called()

    def test_no_pvc_for_raw_devices(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        sequencer.remove_osd(3)
        workloads.delete_prepare_jobs.assert_not_called()
        workloads.delete_pvc.assert_not_called()


class TestPurge(object):

    def test_failure_is_surfaced(self, caplog):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, fail={'purge'})
        with pytest.raises(PurgeFailed) as error:
            sequencer.remove_osd(3)
        assert error.value.requires_attention is True
        assert ('crush_rm', 'node1') not in ceph.mutations
        assert 'operator attention' in caplog.text


class TestReclaimHost(object):

    def test_failure_does_not_fail_removal(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, fail={'crush_rm'})
        results = sequencer.remove_osd(3)
        assert results[-1].kind is StepKind.ADVISORY
        assert ceph.mutations[-1] == ('crush_rm', 'node1')

    def test_host_with_other_osds_is_kept(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down', 4: 'up'}})
        results = sequencer.remove_osd(3)
        assert ('crush_rm', 'node1') not in ceph.mutations
        assert results[-1].kind is StepKind.OK

    def test_last_osd_on_host_removes_it(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down', 4: 'down'}})
        sequencer.remove_osd(3)
        assert ('crush_rm', 'node1') not in ceph.mutations
        sequencer.remove_osd(4)
        assert ceph.mutations[-1] == ('crush_rm', 'node1')

    def test_stray_osd_has_no_host(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {4: 'up'}}, stray={3: 'down'})
        sequencer.remove_osd(3)
        assert not [c for c in ceph.mutations if c[0] == 'crush_rm']

    def test_disabled(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, reclaim_host=False)
        sequencer.remove_osd(3)
        assert ('crush_rm', 'node1') not in ceph.mutations

    def test_tree_failure_is_advisory(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        sequencer.locate(3)
        ceph.fail.add('tree')
        result = sequencer.reclaim_host_slot(3, 'node1')
        assert result.kind is StepKind.ADVISORY

    def test_host_already_gone(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        result = sequencer.reclaim_host_slot(3, 'node7')
        assert result.kind is StepKind.OK
        assert ceph.mutations == []


class TestDryRun(object):

    def test_nothing_is_mutated(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}}, dry_run=True)
        results = sequencer.remove_osd(3)
        assert ceph.mutations == []
        assert ('tree',) in ceph.calls
        workloads.delete_workload.assert_not_called()
        assert [r.kind for r in results] == [StepKind.OK] * 4

    def test_up_osd_is_still_refused(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'up'}}, dry_run=True)
        with pytest.raises(PreconditionFailed):
            sequencer.remove_osd(3)


class TestHostLocks(object):

    def test_one_lock_per_host(self):
        locks = HostLocks()
        assert locks.get('node1') is locks.get('node1')
        assert locks.get('node1') is not locks.get('node2')

    def test_hold_is_reentrant(self):
        locks = HostLocks()
        with locks.hold('node1'):
            with locks.hold('node1'):
                pass


def test_from_config():
    from osdremove.config import RemoveConfig
    conf = RemoveConfig.from_dict({'namespace': 'storage',
                                   'cleanup_pvc': False})
    sequencer = Sequencer.from_config(conf, Mock(), Mock(), Mock())
    assert sequencer.namespace == 'storage'
    assert sequencer.cleanup_pvc is False
    assert sequencer.reclaim_host is True
    assert sequencer.deployment_name(12) == 'rook-ceph-osd-12'


def test_steps_are_logged_with_osd_id(caplog):
    caplog.set_level(logging.INFO)
    sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
    sequencer.remove_osd(3)
    assert 'marked osd.3 out' in caplog.text
    assert 'purged osd.3' in caplog.text
    assert 'completed removal of osd.3' in caplog.text


class TestOtherFailures(object):
    """
    Failures that are not command or API errors still follow the rules of
    the step they happen in.
    """

    def test_tree_os_error_is_refused(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}},
            fail={'tree': OSError(24, 'Too many open files')})
        with pytest.raises(PreconditionFailed) as error:
            sequencer.remove_osd(3)
        assert 'Too many open files' in str(error.value)
        assert ceph.mutations == []

    def test_missing_ceph_binary_is_refused(self, monkeypatch):
        def popen(*a, **kw):
            raise FileNotFoundError(2, "No such file or directory: 'ceph'")
        monkeypatch.setattr('osdremove.process.subprocess.Popen', popen)
        ceph = CephCLI()
        workloads = make_workloads([])
        sequencer = Sequencer(ceph, ClusterState(ceph), workloads,
                              'rook-ceph')
        with pytest.raises(PreconditionFailed):
            sequencer.remove_osd(3)
        workloads.delete_workload.assert_not_called()

    def test_mark_out_os_error(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}},
            fail={'out': OSError(11, 'Resource temporarily unavailable')})
        with pytest.raises(MarkOutFailed):
            sequencer.remove_osd(3)
        assert ceph.mutations == [('out', 3)]
        workloads.delete_workload.assert_not_called()

    def test_unreachable_kubernetes_api_still_purges(self):
        calls = []
        ceph = FakeCeph(make_tree({'node1': {3: 'down'}}), calls=calls)
        apps = Mock()
        apps.read_namespaced_deployment.side_effect = \
            apps.delete_namespaced_deployment.side_effect = MaxRetryError(
                None, '/apis/apps/v1/namespaces/rook-ceph/deployments',
                reason=ConnectionRefusedError(111, 'Connection refused'))
        workloads = WorkloadManager(apps, Mock(), Mock())
        sequencer = Sequencer(ceph, ClusterState(ceph), workloads,
                              'rook-ceph')
        results = sequencer.remove_osd(3)
        assert results[1].kind is StepKind.ADVISORY
        assert isinstance(results[1].error, WorkloadError)
        assert ceph.mutations == [
            ('out', 3),
            ('purge', 3),
            ('crush_rm', 'node1'),
        ]

    def test_unexpected_teardown_error_is_advisory(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        workloads.delete_workload.side_effect = RuntimeError('boom')
        results = sequencer.remove_osd(3)
        assert results[1].kind is StepKind.ADVISORY
        assert ('purge', 3) in ceph.mutations

    def test_purge_os_error_needs_attention(self, caplog):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}},
            fail={'purge': OSError(24, 'Too many open files')})
        with pytest.raises(PurgeFailed) as error:
            sequencer.remove_osd(3)
        assert error.value.requires_attention is True
        assert 'operator attention' in caplog.text
        assert ('crush_rm', 'node1') not in ceph.mutations

    def test_crush_rm_os_error_is_advisory(self):
        sequencer, ceph, workloads = make_sequencer(
            {'node1': {3: 'down'}},
            fail={'crush_rm': OSError(24, 'Too many open files')})
        results = sequencer.remove_osd(3)
        assert results[-1].kind is StepKind.ADVISORY
        assert ceph.mutations[-1] == ('crush_rm', 'node1')

    def test_host_query_error_is_advisory(self):
        sequencer, ceph, workloads = make_sequencer({'node1': {3: 'down'}})
        sequencer.state = Mock(wraps=sequencer.state)
        sequencer.state.host_children.side_effect = KeyError('children')
        results = sequencer.remove_osd(3)
        assert results[-1].kind is StepKind.ADVISORY
        assert ('purge', 3) in ceph.mutations
