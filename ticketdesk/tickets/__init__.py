"""Ticket lifecycle: status graph, store, transitions, assignment and comments."""
