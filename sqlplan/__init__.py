"""SQL values, expressions and normal forms, table schemas, query plan nodes and a plan optimizer."""

__version__ = "0.1.0"
__all__ = ["values", "schema", "expression", "normal", "plan", "optimizer"]