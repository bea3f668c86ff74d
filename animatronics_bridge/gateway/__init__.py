"""
Device presence and command-routing gateway.

Registry, presence reconciliation, liveness monitoring, command admission
and notification fan-out, plus the aiohttp server exposing them. Import
from the submodules directly.
"""
