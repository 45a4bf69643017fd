"""Web framework bindings, each behind its own optional extra."""
