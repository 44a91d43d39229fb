import logging

from gevent import subprocess

logger = logging.getLogger(__name__)


def log_output(descriptor, message, verbose):
    """
    log output at info level when verbose, debug otherwise
    """
    if not message:
        return
    message = message.strip()
    line = '%s %s' % (descriptor, message)
    if verbose:
        logger.info(line)
    else:
        logger.debug(line)


def call(command, timeout=None, **kw):
    """
    Similar to ``subprocess.Popen`` with the following changes:

    * returns stdout, stderr, and exit code (vs. just the exit code)
    * logs the full contents of stderr and stdout (separately), at info level
      when the command fails and at debug level otherwise
    * kills the process and returns exit code ``None`` when ``timeout``
      (seconds) expires

    Popen comes from gevent so that several calls can be in flight at once
    when removals run in parallel.
    """
    command_msg = "Running command: %s" % ' '.join(command)
    logger.info(command_msg)

    process = subprocess.Popen(
        command,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.PIPE,
        close_fds=True,
        **kw
    )

    try:
        stdout_stream, stderr_stream = process.communicate(timeout=timeout)
        returncode = process.wait()
    except subprocess.TimeoutExpired:
        process.kill()
        stdout_stream, stderr_stream = process.communicate()
        returncode = None
        logger.warning('command timed out after %ss: %s', timeout, command_msg)

    if not isinstance(stdout_stream, str):
        stdout_stream = stdout_stream.decode('utf-8', errors='replace')
    if not isinstance(stderr_stream, str):
        stderr_stream = stderr_stream.decode('utf-8', errors='replace')
    stdout = stdout_stream.splitlines()
    stderr = stderr_stream.splitlines()

    # failures always make it to the log
    verbose = returncode != 0

    # the following can get a messed up order in the log if the system call
    # returns output with both stderr and stdout intermingled. This separates
    # that.
    for line in stdout:
        log_output('stdout', line, verbose)
    for line in stderr:
        log_output('stderr', line, verbose)
    return stdout, stderr, returncode
