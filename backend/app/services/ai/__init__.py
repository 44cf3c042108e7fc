"""
Carbon-reduction advice services.

The model only proposes strategies; every payload it produces is decoded,
coerced and validated here, and a deterministic heuristic stands in whenever
the provider or its output cannot be trusted.
"""
