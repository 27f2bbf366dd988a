"""Nulm backend: anonymous one-on-one chat matchmaking."""
