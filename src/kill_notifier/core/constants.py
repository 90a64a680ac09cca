"""
Kill Notifier Constants

Shared constants for ESI lookups, Discord delivery, and killmail rendering.
"""

# =============================================================================
# ESI Configuration
# =============================================================================

ESI_BASE_URL = "https://esi.evetech.net/latest"
ESI_DATASOURCE = "tranquility"
USER_AGENT = "kill-notifier/1.0 (killmail notification relay)"

# =============================================================================
# Discord Configuration
# =============================================================================

DISCORD_API_BASE_URL = "https://discord.com/api/v10"

# =============================================================================
# Public Image and Link Hosts
# =============================================================================

IMAGE_SERVER_URL = "https://images.evetech.net"
ZKILLBOARD_URL = "https://zkillboard.com"

# =============================================================================
# Universe Ranges
#
# Wormhole (J-space) solar systems occupy a fixed id range.
# =============================================================================

WORMHOLE_SYSTEM_MIN = 31000000
WORMHOLE_SYSTEM_MAX = 31999999


def is_wormhole_system(system_id: int | None) -> bool:
    """Check whether a solar system id falls in the wormhole range."""
    if system_id is None:
        return False
    return WORMHOLE_SYSTEM_MIN <= system_id <= WORMHOLE_SYSTEM_MAX
