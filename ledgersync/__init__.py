"""
ledgersync - Transaction Synchronization Core

Keeps a device's local transaction store consistent with the user's
per-user collection in the cloud.

DESIGN PRINCIPLES:
1. Local store first: edits never wait on the network
2. Every unconfirmed change stays pending until the remote confirms it
3. Conflicts resolve deterministically (later creation timestamp wins)
4. Remote changes apply in whole batches, never half
5. Remote backend and local store are swappable
"""

__version__ = "1.0.0"
__author__ = "ledgersync Team"
