"""cvchat — terminal chat client for the ControlVector infrastructure assistant."""

__version__ = "0.1.0"
