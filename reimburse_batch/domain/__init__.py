"""Pure job DTOs, enums and payload types."""
