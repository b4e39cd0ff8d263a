"""Platform-specific scanner strategies. Import through ``portzap.scanner.create_scanner``."""
