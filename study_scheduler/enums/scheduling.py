"""
Scheduling Enums

Defines the recall quality scale, the item lifecycle states and the
content types that can be scheduled for review.
"""

from enum import Enum, IntEnum


class ItemStatus(str, Enum):
    """
    Lifecycle states of a schedulable item.

    State transitions:
    - LEARNING → REVIEWING (first successful review)
    - REVIEWING → MASTERED (mastery threshold of consecutive successes)
    - LEARNING/REVIEWING/MASTERED → LEARNING (lapse)
    - any → SUSPENDED → previous state (explicit toggle, never via review)
    """

    LEARNING = "LEARNING"  # New or lapsed, short intervals
    REVIEWING = "REVIEWING"  # At least one success since last lapse
    MASTERED = "MASTERED"  # Still scheduled, shown as mastered
    SUSPENDED = "SUSPENDED"  # Never due until unsuspended


class ContentType(str, Enum):
    """
    Kind of external content an item tracks.

    The scheduler treats content as opaque; the type only records which
    content subsystem owns the referenced id.
    """

    FLASHCARD = "FLASHCARD"
    QUESTION = "QUESTION"
    ERROR_NOTEBOOK_ENTRY = "ERROR_NOTEBOOK_ENTRY"


class Quality(IntEnum):
    """
    SM-2 recall quality (0-5).

    Qualities below 3 are lapses.
    """

    BLACKOUT = 0  # Complete failure to recall
    INCORRECT = 1  # Wrong, but the answer felt familiar
    INCORRECT_EASY_RECALL = 2  # Wrong, but the answer seemed easy once shown
    CORRECT_DIFFICULT = 3  # Correct with serious difficulty
    CORRECT_HESITANT = 4  # Correct after hesitation
    PERFECT = 5  # Perfect recall

    @classmethod
    def from_legacy(cls, legacy: "LegacyQuality") -> "Quality":
        """Map a 4-level legacy rating onto the 0-5 scale."""
        return _LEGACY_QUALITY_MAP[LegacyQuality(legacy)]


class LegacyQuality(IntEnum):
    """
    4-level review rating used by older flashcard clients.

    Not numerically interchangeable with Quality; convert with
    Quality.from_legacy().
    """

    BAD = 0  # Completely forgot
    DIFFICULT = 1  # Remembered with difficulty
    GOOD = 2  # Remembered correctly after some hesitation
    EASY = 3  # Perfect recall


_LEGACY_QUALITY_MAP = {
    LegacyQuality.BAD: Quality.BLACKOUT,
    LegacyQuality.DIFFICULT: Quality.CORRECT_DIFFICULT,
    LegacyQuality.GOOD: Quality.CORRECT_HESITANT,
    LegacyQuality.EASY: Quality.PERFECT,
}
