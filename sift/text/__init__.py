"""Pure text normalization helpers."""
