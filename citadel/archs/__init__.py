"""Citadel host architecture: storage, audit, registry, gateway, sessions and transports."""
