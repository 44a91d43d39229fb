import os
import yaml
import logging
import collections.abc

from osdremove.exceptions import ConfigError


log = logging.getLogger(__name__)


class YamlConfig(collections.abc.MutableMapping):
    """
    A configuration object populated by parsing a yaml file, with optional
    default values.

    Note that modifying the _defaults attribute of an instance can potentially
    yield confusing results; if you need to do modify defaults, use the class
    variable or create a subclass.
    """
    _defaults = dict()

    def __init__(self, yaml_path=None):
        self.yaml_path = yaml_path
        if self.yaml_path:
            self.load()
        else:
            self._conf = dict()

    def load(self):
        if os.path.exists(self.yaml_path):
            with open(self.yaml_path) as f:
                self._conf = yaml.safe_load(f) or dict()
        else:
            log.debug("%s not found", self.yaml_path)
            self._conf = dict()

    @classmethod
    def from_dict(cls, in_dict):
        """
        Build a config object from a dict.

        :param in_dict: The dict to use
        :returns:       The config object
        """
        conf_obj = cls()
        conf_obj._conf = in_dict
        return conf_obj

    def __str__(self):
        return yaml.safe_dump(self._conf, default_flow_style=False).strip()

    def __repr__(self):
        return self.__str__()

    def __getitem__(self, name):
        return self.__getattr__(name)

    def __getattr__(self, name):
        if name.startswith('__'):
            raise AttributeError(name)
        return self._conf.get(name, self._defaults.get(name))

    def __contains__(self, name):
        return self._conf.__contains__(name)

    def __setattr__(self, name, value):
        if name.endswith('_conf') or name in ('yaml_path',):
            object.__setattr__(self, name, value)
        else:
            self._conf[name] = value

    def __delattr__(self, name):
        del self._conf[name]

    def __len__(self):
        return self._conf.__len__()

    def __iter__(self):
        return self._conf.__iter__()

    def __setitem__(self, name, value):
        self._conf.__setitem__(name, value)

    def __delitem__(self, name):
        self._conf.__delitem__(name)


def parse_mon_endpoints(endpoints):
    """
    Rook hands out monitor endpoints as ``a=10.0.0.1:6789,b=10.0.0.2:6789``;
    ceph.conf wants ``10.0.0.1:6789,10.0.0.2:6789``.
    """
    hosts = []
    for endpoint in endpoints.split(','):
        endpoint = endpoint.strip()
        if not endpoint:
            continue
        if '=' in endpoint:
            endpoint = endpoint.split('=', 1)[1]
        hosts.append(endpoint)
    return ','.join(hosts)


class RemoveConfig(YamlConfig):
    """
    Settings for ceph-osd-remove. Values come from ~/.ceph_osd_remove.yaml
    (or /etc/ceph/osd_remove.yaml), then from the environment variables a
    Rook OSD removal job is started with.
    """
    yaml_path = os.path.join(os.path.expanduser('~/.ceph_osd_remove.yaml'))
    _defaults = {
        'namespace': 'rook-ceph',
        'cluster': 'ceph',
        'conf_dir': '/etc/ceph',
        'ceph_user': 'client.admin',
        'ceph_secret': None,
        'fsid': None,
        'mon_host': None,
        'deployment_prefix': 'rook-ceph-osd',
        'cleanup_pvc': True,
        'reclaim_host': True,
        'max_parallel': 1,
        'command_timeout': 60,
        'log_path': None,
    }

    # environment variable -> config key
    _environ = {
        'POD_NAMESPACE': 'namespace',
        'ROOK_CEPH_CLUSTER': 'cluster',
        'ROOK_FSID': 'fsid',
        'ROOK_MON_ENDPOINTS': 'mon_host',
        'ROOK_CEPH_USERNAME': 'ceph_user',
        'ROOK_CEPH_SECRET': 'ceph_secret',
    }

    def __init__(self, yaml_path=None):
        super(RemoveConfig, self).__init__(yaml_path or self.yaml_path)

    def load_environ(self, environ=None):
        environ = os.environ if environ is None else environ
        for var, key in self._environ.items():
            value = environ.get(var)
            if not value:
                continue
            if key == 'mon_host':
                value = parse_mon_endpoints(value)
            log.debug("%s set from $%s", key, var)
            self._conf[key] = value

    def validate(self):
        for key in ('max_parallel', 'command_timeout'):
            value = self[key]
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ConfigError(
                    "{key} must be an integer, got {value!r}".format(
                        key=key, value=value))
            if value < 1:
                raise ConfigError(
                    "{key} must be positive, got {value}".format(
                        key=key, value=value))
            self._conf[key] = value
        if not self.namespace:
            raise ConfigError("namespace must not be empty")


def _get_config_path():
    system_config_path = '/etc/ceph/osd_remove.yaml'
    if not os.path.exists(RemoveConfig.yaml_path) and \
            os.path.exists(system_config_path):
        return system_config_path
    return RemoveConfig.yaml_path


def load_config(yaml_path=None, environ=None):
    """
    Build the effective configuration: yaml file, then environment, then
    validation.
    """
    conf = RemoveConfig(yaml_path=yaml_path or _get_config_path())
    conf.load_environ(environ)
    conf.validate()
    return conf
