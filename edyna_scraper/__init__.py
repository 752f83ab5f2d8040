"""Edyna portal scraper: hourly consumption extraction into TimescaleDB.

    from edyna_scraper.scraper.portal_flow import PortalFlow
    from edyna_scraper.io.timeseries_store import IngestionStore
"""
