class ConfigError(RuntimeError):
    """
    Meant to be used when an invalid config entry is found.
    """
    pass


class ClusterConfigError(RuntimeError):
    """
    Raised when the ceph.conf/keyring pair needed to talk to the cluster
    cannot be written. This aborts a whole batch.
    """
    def __init__(self, path, reason):
        self.path = path
        self.reason = reason

    def __str__(self):
        return "Failed to write the ceph config {path}: {reason}".format(
            path=self.path, reason=self.reason)


class CommandFailedError(Exception):

    """
    Exception thrown on command failure
    """
    def __init__(self, command, exitstatus, stderr=None):
        self.command = command
        self.exitstatus = exitstatus
        self.stderr = stderr

    def __str__(self):
        msg = "Command failed with status {status}: {cmd!r}".format(
            status=self.exitstatus,
            cmd=' '.join(self.command),
        )
        if self.stderr:
            msg += ": {stderr}".format(stderr=self.stderr)
        return msg


class CommandTimeoutError(CommandFailedError):

    """
    Exception thrown when a command does not finish in time
    """
    def __init__(self, command, timeout):
        super(CommandTimeoutError, self).__init__(command, None)
        self.timeout = timeout

    def __str__(self):
        return "Command timed out after {timeout}s: {cmd!r}".format(
            timeout=self.timeout,
            cmd=' '.join(self.command),
        )


class ClusterStateError(RuntimeError):
    """
    The OSD tree could not be fetched or did not make sense.
    """
    pass


class WorkloadError(Exception):

    def __init__(self, namespace, name, cause):
        self.namespace = namespace
        self.name = name
        self.cause = cause

    def __str__(self):
        return "Failed to delete {namespace}/{name}: {cause}".format(
            namespace=self.namespace, name=self.name, cause=self.cause)


class DecommissionError(Exception):
    """
    Base class for errors that abort the removal of a single OSD.
    """
    requires_attention = False

    def __init__(self, osd_id, cause=None):
        self.osd_id = osd_id
        self.cause = cause

    def __str__(self):
        return "{what} for osd.{osd_id}: {cause}".format(
            what=self.what, osd_id=self.osd_id, cause=self.cause)

    @property
    def what(self):
        return self.__class__.__name__


class PreconditionFailed(DecommissionError):
    """
    The OSD is not down, or whether it is down could not be established.
    Nothing was changed in the cluster.
    """
    @property
    def what(self):
        return "Refusing removal"


class MarkOutFailed(DecommissionError):

    @property
    def what(self):
        return "Failed to mark out"


class PurgeFailed(DecommissionError):
    """
    The OSD was marked out but could not be purged, the cluster needs an
    operator to finish the job.
    """
    requires_attention = True

    @property
    def what(self):
        return "Failed to purge"
