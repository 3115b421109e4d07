"""PeerLoom live classroom backend."""
