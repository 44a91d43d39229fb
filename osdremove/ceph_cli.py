'''
Utility class to call the ceph binary
'''
import json
import logging
import os

from osdremove import process
from osdremove.exceptions import CommandFailedError, CommandTimeoutError

log = logging.getLogger(__name__)


class CephCLI(object):
    """
    Runs administrative ``ceph`` commands against the cluster control plane.
    Every call is a blocking round trip; a non-zero exit status or a timeout
    raises ``CommandFailedError``.
    """

    def __init__(self, cluster='ceph', user=None, keyring=None,
                 conf_path=None, timeout=None):
        self.cluster = cluster
        self.user = user
        self.keyring = keyring
        self.conf_path = conf_path
        self.timeout = timeout

    @classmethod
    def from_config(cls, conf):
        conf_dir = conf.conf_dir
        return cls(
            cluster=conf.cluster,
            user=conf.ceph_user,
            keyring=os.path.join(conf_dir, '%s.keyring' % conf.cluster),
            conf_path=os.path.join(conf_dir, '%s.conf' % conf.cluster),
            timeout=conf.command_timeout,
        )

    def get_cmd(self, cmd):
        base_cmd = [
            'ceph',
            '--cluster', self.cluster,
        ]
        if self.conf_path:
            base_cmd.extend(['--conf', self.conf_path])
        if self.user:
            base_cmd.extend(['--name', self.user])
        if self.keyring:
            base_cmd.extend(['--keyring', self.keyring])
        return base_cmd + list(cmd)

    def run(self, *args):
        """
        Run ``ceph <args>`` and return its stdout as a single string.
        """
        command = self.get_cmd(args)
        try:
            stdout, stderr, returncode = process.call(
                command, timeout=self.timeout)
        except OSError as e:
            # the binary is missing, or we are out of processes/fds
            raise CommandFailedError(command, None, str(e))
        if returncode is None:
            raise CommandTimeoutError(command, self.timeout)
        if returncode != 0:
            raise CommandFailedError(command, returncode, '\n'.join(stderr))
        return '\n'.join(stdout)

    def run_json(self, *args):
        out = self.run(*(args + ('--format', 'json')))
        try:
            return json.loads(out)
        except ValueError as e:
            log.error('unable to decode json output of %s: %s',
                      ' '.join(args), e)
            raise

    def osd_out(self, osd_id):
        return self.run('osd', 'out', 'osd.%d' % osd_id)

    def osd_purge(self, osd_id):
        return self.run('osd', 'purge', 'osd.%d' % osd_id,
                        '--force', '--yes-i-really-mean-it')

    def crush_rm(self, name):
        return self.run('osd', 'crush', 'rm', name)

    def osd_tree(self):
        return self.run_json('osd', 'tree')
