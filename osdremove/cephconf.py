import configparser
import logging
import os

from osdremove.exceptions import ClusterConfigError


logger = logging.getLogger(__name__)


class Conf(configparser.ConfigParser):
    """
    ConfigParser that writes ``key = value`` pairs the way ceph tools
    expect and leaves option names untouched.
    """

    def optionxform(self, optionstr):
        return optionstr


def _write(path, parser, mode):
    # keyrings must never be world readable, not even briefly
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, 'w') as fp:
        parser.write(fp)
    os.chmod(path, mode)


def _mon_host(value):
    # yaml configs may list the monitors instead of giving one string
    if isinstance(value, (list, tuple)):
        return ','.join(str(host) for host in value)
    return str(value)


def config_paths(conf):
    base = os.path.join(conf.conf_dir, conf.cluster)
    return base + '.conf', base + '.keyring'


def write_cluster_config(conf):
    """
    Materialize ``<conf_dir>/<cluster>.conf`` and its keyring so that ceph
    commands can reach the cluster.

    :returns: (conf path, keyring path)
    :raises ClusterConfigError: when a required value is missing or the files
                                cannot be written
    """
    conf_path, keyring_path = config_paths(conf)
    missing = [key for key in ('fsid', 'mon_host', 'ceph_secret')
               if not conf[key]]
    if missing:
        raise ClusterConfigError(
            conf_path, 'missing required settings: %s' % ', '.join(missing))

    ceph_conf = Conf()
    ceph_conf['global'] = {
        'fsid': conf.fsid,
        'mon_host': _mon_host(conf.mon_host),
        'keyring': keyring_path,
    }

    keyring = Conf()
    keyring[conf.ceph_user] = {'key': conf.ceph_secret}

    try:
        if not os.path.isdir(conf.conf_dir):
            os.makedirs(conf.conf_dir, 0o755)
        _write(conf_path, ceph_conf, 0o644)
        _write(keyring_path, keyring, 0o600)
    except (OSError, IOError) as err:
        logger.error('unable to write the ceph config to %s: %s',
                     conf.conf_dir, err)
        raise ClusterConfigError(conf_path, err)

    logger.info('wrote ceph config to %s and keyring to %s',
                conf_path, keyring_path)
    return conf_path, keyring_path
