"""Host environments the tracker can run against."""
