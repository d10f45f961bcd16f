"""AREA Engine - trigger, reaction-chain and activation orchestration core."""

__version__ = "0.1.0"
