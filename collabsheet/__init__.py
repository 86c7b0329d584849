"""LLM enrichment for spreadsheet rows: company profiles, collaboration matrices, contacts."""

__version__ = "0.1.0"
