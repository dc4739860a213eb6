"""
Router inventory - devices to back up and their last backup time.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from routerbackup.inventory.database import (
    DeviceInventory,
    SQLiteInventory,
    PostgreSQLInventory,
    get_inventory,
)

__all__ = [
    "DeviceInventory",
    "SQLiteInventory",
    "PostgreSQLInventory",
    "get_inventory",
]
