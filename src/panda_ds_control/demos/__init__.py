"""Demo drivers: operation space, inverse dynamics and the reference dynamics server."""
