"""Permission checks for SystemInfo commands.

Permissions are plain dotted keys (``systeminfo.commands.speedtest``).
Grants come from the ``permissions:`` section of settings.yaml and may
use ``*`` or a ``prefix.*`` wildcard. The console requester holds
every permission.
"""

from typing import Dict, List, Optional

import structlog

from .config import get_config

logger = structlog.get_logger("systeminfo.host")

CONSOLE = "console"


def _grant_matches(grant: str, key: str) -> bool:
    if grant == "*" or grant == key:
        return True
    if grant.endswith(".*"):
        return key.startswith(grant[:-1])
    return False


def has_permission(
    requester: str,
    key: str,
    grants: Optional[Dict[str, List[str]]] = None,
) -> bool:
    """Check whether a requester holds a permission key.

    Args:
        requester: Name of the invoking principal.
        key: Permission key required by the command.
        grants: Requester -> granted keys. Defaults to the configured
            permissions.

    Returns:
        True if any grant covers the key.
    """
    if requester == CONSOLE:
        return True
    if grants is None:
        grants = get_config().permissions

    if any(_grant_matches(grant, key) for grant in grants.get(requester, [])):
        return True

    logger.debug("permission_denied", requester=requester, permission=key)
    return False
