"""sitesync: export and import builder settings and templates as JSON files."""

__version__ = "1.0.0"
