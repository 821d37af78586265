"""Pure derivations over the message timeline. No app, io or tui imports."""
