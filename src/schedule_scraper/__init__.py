"""
Schedule Scraper

Scrapes fitness-class schedules, stores them locally with duplicate
detection and forwards them to the backend in batches.
"""

__version__ = "0.2.0"
