"""ThinkTest backend: GitHub plugin ingestion, analysis and test generation."""
