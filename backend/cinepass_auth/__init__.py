"""CinePass auth service: token issuing, refresh and revocation."""
