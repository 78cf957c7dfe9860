"""Scraper pipeline that harvests GoOut listings into the TipNaDen event store."""
