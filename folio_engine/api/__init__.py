"""HTTP API for Folio Engine."""
