"""Pure domain types and the injectable clock."""
