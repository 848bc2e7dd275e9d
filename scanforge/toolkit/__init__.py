"""Tool definitions, severity/fix normalization and availability diagnostics."""
