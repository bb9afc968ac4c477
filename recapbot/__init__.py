"""recapbot: meeting recording bot reconciliation and follow-up content."""

__version__ = "0.1.0"
