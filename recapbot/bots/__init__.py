"""Recording bot lifecycle: creation, status reconciliation, transcripts."""
