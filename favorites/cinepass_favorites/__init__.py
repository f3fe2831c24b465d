"""CinePass favorites service: routes protected by remotely verified tokens."""
