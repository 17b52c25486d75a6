"""gofi: collect file-inventory snapshots from many machines into one catalog."""

__version__ = "0.1.0"
