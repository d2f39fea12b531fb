"""Date engine and milestone state machine."""
