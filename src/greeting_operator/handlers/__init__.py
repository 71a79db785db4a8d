"""Handler modules for the greeting operator."""
