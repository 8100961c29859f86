"""Start, watch and stop local development services in tiers."""

__version__ = "0.1.0"