"""Pure domain primitives: amounts, clock, periods, workflow types."""
