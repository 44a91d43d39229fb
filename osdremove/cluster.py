"""
Read-only view of the cluster topology, as reported by ``ceph osd tree``.
"""
import enum
import logging

from osdremove.exceptions import ClusterStateError, CommandFailedError

log = logging.getLogger(__name__)


class OSDState(enum.Enum):
    UP = 'up'
    DOWN = 'down'


class OSDTree(object):
    """
    One snapshot of the CRUSH hierarchy. Built from the json output of
    ``ceph osd tree``::

        {"nodes": [{"id": -3, "name": "node1", "type": "host",
                    "children": [0, 1]},
                   {"id": 0, "name": "osd.0", "type": "osd",
                    "status": "down"}, ...],
         "stray": [...]}

    OSDs that are not placed in the CRUSH map show up in ``stray``.
    """

    def __init__(self, tree):
        try:
            nodes = list(tree.get('nodes', [])) + list(tree.get('stray', []))
            self.nodes = dict((node['id'], node) for node in nodes)
        except (AttributeError, KeyError, TypeError) as e:
            raise ClusterStateError('malformed osd tree: %r' % e)
        self._parents = dict()
        for node in self.nodes.values():
            for child in node.get('children', []):
                self._parents[child] = node['id']

    def osd(self, osd_id):
        node = self.nodes.get(osd_id)
        if node is None or node.get('type') != 'osd':
            raise ClusterStateError('osd.%d not found in the osd tree' % osd_id)
        return node

    def osd_state(self, osd_id):
        status = self.osd(osd_id).get('status')
        try:
            return OSDState(status)
        except ValueError:
            raise ClusterStateError(
                'osd.%d has unknown status %r' % (osd_id, status))

    def host_of(self, osd_id):
        """
        Name of the host bucket the OSD lives under, or None if the OSD is not
        placed under a host (e.g. a stray OSD).
        """
        self.osd(osd_id)
        parent = self._parents.get(osd_id)
        while parent is not None:
            node = self.nodes[parent]
            if node.get('type') == 'host':
                if not node.get('name'):
                    raise ClusterStateError(
                        'host bucket %d of osd.%d has no name' %
                        (node['id'], osd_id))
                return node['name']
            parent = self._parents.get(parent)
        return None

    def host_children(self, host):
        for node in self.nodes.values():
            if node.get('type') == 'host' and node.get('name') == host:
                return list(node.get('children', []))
        return None


class ClusterState(object):
    """
    Answers liveness and placement questions about OSDs. Nothing is cached:
    every call fetches a fresh tree.
    """

    def __init__(self, ceph):
        self.ceph = ceph

    def tree(self):
        try:
            return OSDTree(self.ceph.osd_tree())
        except (CommandFailedError, ValueError) as e:
            raise ClusterStateError('unable to query the osd tree: %s' % e)

    def locate(self, osd_id):
        """
        Host affinity and state of an OSD from a single snapshot.

        :returns: (host name or None, OSDState)
        """
        tree = self.tree()
        return tree.host_of(osd_id), tree.osd_state(osd_id)

    def get_osd_state(self, osd_id):
        return self.tree().osd_state(osd_id)

    def get_host_affinity(self, osd_id):
        return self.tree().host_of(osd_id)

    def host_children(self, host):
        """
        IDs still placed under ``host``, or None when the host bucket is
        already gone.
        """
        return self.tree().host_children(host)
