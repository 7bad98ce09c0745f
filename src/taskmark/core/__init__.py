"""Core domain logic for taskmark: task storage, relationships and validation."""
