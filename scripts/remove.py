"""
usage: ceph-osd-remove --help
       ceph-osd-remove --version
       ceph-osd-remove [options] [--] <osd_id>...

Remove OSDs from a Rook managed Ceph cluster. Each OSD must be 'down'; it is
marked out, its deployment is deleted, it is purged from the cluster and its
CRUSH host is removed once empty.

positional arguments:
  <osd_id>                       one or more OSD ids, e.g. 3

optional arguments:
  -h, --help                     show this help message and exit
  --version                      the current installed version
  -v, --verbose                  be more verbose
  -n, --dry-run                  check the OSDs and log what would be done
  -c CONFIG, --config CONFIG     yaml config file to read
  --namespace NS                 namespace of the OSD deployments
  --parallel N                   remove up to N OSDs at once
  --keep-pvc                     do not delete the PVCs OSDs run on
  --keep-host                    do not remove CRUSH hosts left empty
  --log-file PATH                also log to PATH
"""
import sys

import docopt

import osdremove
import osdremove.run


def main():
    args = docopt.docopt(__doc__, version=osdremove.__version__)
    sys.exit(osdremove.run.main(args))
