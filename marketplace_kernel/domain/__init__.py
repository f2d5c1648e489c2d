"""Pure domain core: statuses, fee math, status derivation, intents and DTOs."""
