"""Domain layer: canonical catalog entities and domain errors."""
