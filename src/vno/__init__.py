"""Voice Note Orchestrator - background transcription and summarization jobs."""

__version__ = "0.1.0"
