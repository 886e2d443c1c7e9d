"""Intent resolution and action dispatch pipeline."""
