"""Age-based temp/cache purge."""

from sweeper.src.janitor.aging_cleaner import AgingCleaner, AgingResult, default_temp_dirs

__all__ = ["AgingCleaner", "AgingResult", "default_temp_dirs"]
