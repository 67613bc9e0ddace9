"""Device-facing services: SOAP transport, action catalog, topology and commands."""
