"""JSON Schema generation for pgfleet configuration documents."""
