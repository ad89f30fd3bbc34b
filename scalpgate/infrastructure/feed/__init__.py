"""Feed Adapter: Yahoo Finance en vivo con fallback sintético."""
