import logging
import os

import osdremove
from osdremove import report
from osdremove.config import load_config
from osdremove.exceptions import ClusterConfigError, ConfigError
from osdremove.remover import remove_osds
from osdremove import install_except_hook

log = logging.getLogger(__name__)

# exit status when the batch could not even start
BATCH_ABORTED = 2


def set_up_logging(verbose, log_file):
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if log_file is not None:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        if not os.path.isdir(log_dir):
            os.makedirs(log_dir)
        osdremove.setup_log_file(log_file)

    install_except_hook()


def setup_config(args):
    conf = load_config(yaml_path=args['--config'])
    if args['--namespace']:
        conf.namespace = args['--namespace']
    if args['--parallel']:
        conf.max_parallel = args['--parallel']
    if args['--keep-pvc']:
        conf.cleanup_pvc = False
    if args['--keep-host']:
        conf.reclaim_host = False
    conf.validate()
    return conf


def main(args):
    verbose = args['--verbose']
    dry_run = args['--dry-run']
    osd_ids = args['<osd_id>']

    set_up_logging(verbose, args['--log-file'])

    try:
        conf = setup_config(args)
    except ConfigError as e:
        log.error("invalid configuration: %s", e)
        return BATCH_ABORTED
    if conf.log_path and not args['--log-file']:
        osdremove.setup_log_file(conf.log_path)

    log.debug("Effective config:\n%s", conf)
    try:
        outcomes = remove_osds(conf, osd_ids, dry_run=dry_run)
    except (ClusterConfigError, ConfigError) as e:
        log.error("%s", e)
        return BATCH_ABORTED

    print(report.format_outcomes(outcomes))
    return report.exit_status(outcomes)
