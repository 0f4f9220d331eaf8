"""Transports exposing the Citadel host."""
