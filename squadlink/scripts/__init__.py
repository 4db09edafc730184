"""Interactive flows run by the squadlink entry point."""
