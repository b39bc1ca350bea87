"""Media pipeline primitives and external service clients."""
