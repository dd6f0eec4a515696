"""Built-in AWS cost-optimization catalog (YAML definitions)."""
