"""HTTP surface over the transition engine."""
