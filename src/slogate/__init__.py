"""slogate: SLO error budget evaluation and deploy gating."""

__version__ = "0.1.0"
