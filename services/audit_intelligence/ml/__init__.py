"""Heuristic scoring engines for audit recommendations."""
