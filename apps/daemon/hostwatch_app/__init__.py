"""hostwatch daemon application: CLI, runtime wiring and HTTP boundary."""
