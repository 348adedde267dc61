"""Shopping cart storage, snapshots and operations."""
