"""Provider adapters and transport helpers."""
