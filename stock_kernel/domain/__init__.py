"""Pure domain types for the stock kernel: clock abstraction and result DTOs."""
