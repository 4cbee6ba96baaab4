"""Services package: scheduling of study content."""
