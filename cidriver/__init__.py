"""cidriver - cross-platform CI build driver."""
