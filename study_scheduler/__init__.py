"""SM-2 spaced repetition scheduling for study content."""
