"""Live content, stored documents and their serialization."""
