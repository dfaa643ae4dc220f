"""Backend-for-Frontend in front of an Ory Kratos identity provider and an Ory Hydra authorization server."""

__version__ = "0.1.0"
