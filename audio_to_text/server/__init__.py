"""HTTP API for batch transcription and realtime token issuance."""
