"""Pure domain layer: clock, DTOs, capabilities and posting strategies."""
