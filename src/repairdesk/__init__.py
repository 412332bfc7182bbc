"""RepairDesk: asset-centric repair ticketing and inventory core."""

__version__ = "0.1.0"
