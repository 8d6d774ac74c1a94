"""Double ratchet with encrypted headers: keys, chains and the ratchet participant."""

__version__ = "0.1.0"