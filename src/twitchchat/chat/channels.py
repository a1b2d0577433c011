"""
Channel reconciliation.

Brings the channels joined on a session in line with the desired channels,
issuing only the joins and parts that are actually needed.
"""

from __future__ import annotations

import logging
from typing import Sequence, TYPE_CHECKING

from ..constants import LOGGER_NAME

if TYPE_CHECKING:
    from .sessions import Session


logger = logging.getLogger(LOGGER_NAME)


def reconcile(session: Session, desired: Sequence[str]) -> bool:
    """
    Part the channels that aren't desired anymore, then join the missing ones.

    Parts walk the joined list back to front, joins follow the order of `desired`.
    If the session's transport gets replaced or torn down while this runs,
    the remaining operations are dropped instead of being applied to a stale transport.

    Returns `True` if the session ended up fully reconciled.
    """
    transport = session.transport
    if transport is None:
        logger.debug(f"Skipping channel sync of the {session.role.value} session: not live")
        return False
    wanted = set(desired)
    joined = session.joined_channels
    # backwards, so that removals don't shift the indexes still to be visited
    for i in range(len(joined) - 1, -1, -1):
        channel = joined[i]
        if channel in wanted:
            continue
        logger.debug(f"Leaving {channel} on the {session.role.value} session")
        transport.part(channel)
        if session.transport is not transport:
            return False
        del joined[i]
    present = set(joined)
    for channel in desired:
        if channel in present:
            continue
        logger.debug(f"Joining {channel} on the {session.role.value} session")
        transport.join(channel)
        if session.transport is not transport:
            return False
        joined.append(channel)
        present.add(channel)
    return True
