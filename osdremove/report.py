from prettytable import PrettyTable

from osdremove.outcome import Status


def format_outcomes(outcomes):
    table = PrettyTable(['REQUEST', 'OSD', 'STATUS', 'DETAIL'],
                        border=False)
    table.left_padding_width = 0
    table.right_padding_width = 2
    table.align['REQUEST'] = 'l'
    table.align['DETAIL'] = 'l'
    for outcome in outcomes:
        table.add_row([outcome.identifier,
                       '' if outcome.osd_id is None else outcome.osd_id,
                       outcome.status.value,
                       outcome.detail])
    return table.get_string()


def exit_status(outcomes):
    """
    0 when nothing failed, 1 otherwise. Skipped identifiers do not count as
    failures.
    """
    if any(o.status is Status.FAILED for o in outcomes):
        return 1
    return 0
