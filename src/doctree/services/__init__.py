"""Services layer: CLI, HTTP app and process host."""
