"""Master-save, patch, publish and playback services."""
