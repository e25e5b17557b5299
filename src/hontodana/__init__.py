"""hontodana: personal book tracking."""
