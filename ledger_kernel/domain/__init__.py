"""Pure domain logic: DTOs, balance rules, clocks and variance math."""
