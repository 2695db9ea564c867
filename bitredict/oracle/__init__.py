"""Settlement oracle: result ingestion, chain sync, pool settlement and the Oddyssey cycle."""
