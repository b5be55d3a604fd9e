"""SQLite persistence for content, documents, generation state and jobs."""
