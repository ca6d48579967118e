"""Services: discovery, merging, settings channels and the configuration engine."""
