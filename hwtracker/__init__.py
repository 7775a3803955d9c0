"""Hardware price tracker: GPU/CPU listings scraper with local and remote storage."""

__version__ = "1.0.0"
