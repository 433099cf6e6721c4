"""Models and services shared by the engine and the TUI."""
