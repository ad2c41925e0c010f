"""Template rendering and batch pin generation engine."""
