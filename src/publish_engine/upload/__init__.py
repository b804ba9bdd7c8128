"""Upload cascade, click fallbacks, signal detection and field filling."""
