"""Settlement services and external client adapters."""
