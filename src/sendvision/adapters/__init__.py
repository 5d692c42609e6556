"""Record source adapters and display helpers."""
