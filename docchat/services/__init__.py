"""Business logic: ingestion, prompt assembly, generation and chat orchestration."""
