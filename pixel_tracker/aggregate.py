from itertools import groupby
from operator import itemgetter


def opened_pixels(event_log, since):
    """Pixels opened after `since` (epoch millis) with their distinct origins.

    Rows come back ordered by pixel id then timestamp, so origins are listed
    in order of first appearance and the result is stable for equal input.
    """
    opened = []
    for pixel_id, rows in groupby(event_log.list_since(since), key=itemgetter(0)):
        ips = []
        for _, ip, _ in rows:
            if ip not in ips:
                ips.append(ip)
        opened.append({"id": pixel_id, "ips": ips})
    return opened
